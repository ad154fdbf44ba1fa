"""Generation modes selected once from the test-mode flag."""

import logging
from dataclasses import dataclass, field

from meal_planner.domain.errors import GenerationDisabledError

_logger = logging.getLogger(__name__)

PROMPT_KINDS: dict[str, str] = {
    "two_stage_core_ingredients": "ingredients",
    "two_stage_meals_from_ingredients": "meals",
    "two_stage_grocery_list": "grocery",
    "prep_mode_analysis": "prep",
}

ADMIN_PROMPT_PREFIX = "admin_"


@dataclass(frozen=True)
class GenerationMode:
    """Strategy describing how a run talks to the oracle.

    ``model`` replaces the caller's model when set. ``token_limits`` replaces
    the caller's ceiling per prompt kind. ``full_week`` False means meal
    synthesis produces one day that is replicated across the week.
    """

    name: str
    model: str | None = None
    token_limits: dict[str, int] = field(default_factory=dict)
    full_week: bool = True
    skip_prep: bool = False
    use_fixture: bool = False

    @property
    def is_production(self) -> bool:
        return self.name == "production"

    def resolve(
        self, prompt_type: str, model: str, max_tokens: int
    ) -> tuple[str, int]:
        """Return the model and token ceiling to use for one call."""
        if prompt_type.startswith(ADMIN_PROMPT_PREFIX):
            return model, max_tokens
        if self.use_fixture:
            raise GenerationDisabledError(
                f"Oracle calls are disabled in {self.name} mode "
                f"(prompt_type={prompt_type})"
            )
        resolved_model = self.model or model
        kind = PROMPT_KINDS.get(prompt_type)
        resolved_tokens = max_tokens
        if kind is not None:
            resolved_tokens = self.token_limits.get(kind, max_tokens)
        if not self.is_production:
            _logger.info(
                "Test mode %s: %s using %s with %s max tokens",
                self.name,
                prompt_type,
                resolved_model,
                resolved_tokens,
            )
        return resolved_model, resolved_tokens


def select_mode(name: str, *, test_model: str) -> GenerationMode:
    """Build the generation mode for a parsed test-mode name."""
    if name == "fixture":
        mode = GenerationMode(
            name=name, full_week=False, skip_prep=True, use_fixture=True
        )
    elif name == "mini-minimal":
        mode = GenerationMode(
            name=name,
            model=test_model,
            token_limits={"ingredients": 4000, "meals": 8000, "grocery": 3000},
            full_week=False,
            skip_prep=True,
        )
    elif name == "mini-full":
        mode = GenerationMode(
            name=name,
            model=test_model,
            token_limits={"ingredients": 8000, "meals": 16000, "grocery": 6000},
            skip_prep=True,
        )
    elif name == "full-minimal":
        mode = GenerationMode(
            name=name,
            token_limits={"ingredients": 8000, "meals": 12000, "grocery": 6000},
            full_week=False,
            skip_prep=True,
        )
    elif name == "production":
        mode = GenerationMode(name=name)
    else:
        raise ValueError(f"Unknown generation mode {name!r}")
    if not mode.is_production:
        _logger.warning("Meal plan generation running in test mode: %s", mode.name)
    return mode
