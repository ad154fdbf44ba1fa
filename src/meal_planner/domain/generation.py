"""Records describing oracle calls and generation runs."""

from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class OracleReply:
    """Structured reply from the generative oracle.

    ``payload`` is None when the oracle produced no parseable structured
    output. ``stop_reason`` carries the provider's stop or incomplete reason.
    """

    payload: dict[str, object] | None
    stop_reason: str | None = None
    output_tokens: int | None = None
    raw_output: str | None = None

    @property
    def truncated(self) -> bool:
        return self.stop_reason in {"max_output_tokens", "max_tokens"}


@dataclass(frozen=True)
class LlmCallRecord:
    """One audited oracle attempt."""

    user_id: str
    prompt_type: str
    model: str
    prompt: str
    output: str
    tokens_used: int | None = None
    duration_ms: int | None = None
    job_id: str | None = None
    error: str | None = None


class RunStage(StrEnum):
    """Progress stages of a generation run."""

    INGREDIENTS = "ingredients"
    INGREDIENTS_DONE = "ingredients_done"
    MEALS = "meals"
    MEALS_DONE = "meals_done"
    FINALIZING = "finalizing"
    FINALIZING_DONE = "finalizing_done"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted by the orchestrator."""

    stage: RunStage
    message: str


class JobStatus(StrEnum):
    """Lifecycle of a background generation job."""

    PENDING = "pending"
    GENERATING_INGREDIENTS = "generating_ingredients"
    GENERATING_MEALS = "generating_meals"
    GENERATING_PREP = "generating_prep"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationJob:
    """Background generation job row."""

    id: str
    user_id: str
    status: JobStatus
    progress_message: str | None = None
    meal_plan_id: str | None = None
    error_message: str | None = None
