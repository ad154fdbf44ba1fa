"""Error taxonomy for meal plan generation."""


class GenerationError(Exception):
    """Base error for the generation pipeline."""

    reason = "Meal plan generation failed. Please retry."

    def __init__(self, message: str, *, raw_output: str | None = None) -> None:
        super().__init__(message)
        self.raw_output = raw_output


class ConfigurationError(GenerationError):
    """Non-retryable fault in how the oracle call was configured."""

    reason = "Meal plan generation failed. Please contact support."


class TruncatedResponseError(ConfigurationError):
    """The oracle stopped because it ran out of output budget."""


class GenerationDisabledError(ConfigurationError):
    """Oracle calls are disabled in the active generation mode."""


class TransientOracleError(GenerationError):
    """Retryable oracle fault: timeout, network error or malformed output."""

    reason = "Temporary failure generating your meal plan. Please retry."


class MalformedResponseError(TransientOracleError):
    """The oracle reply did not match the requested output contract."""


class RateLimitedError(TransientOracleError):
    """The oracle rejected the request because of rate limiting."""

    reason = "Rate limited. Please try again later."


class ContractViolationError(GenerationError):
    """Oracle output could not be normalized into a valid structure."""

    reason = "Meal plan validation failed. Please contact support."


class PlanNotFoundError(GenerationError):
    """The referenced plan does not exist or is not owned by the caller."""

    reason = "Meal plan not found."


class IngredientConflictError(Exception):
    """An ingredient with the same normalized name was created concurrently."""


class ProfileNotFoundError(GenerationError):
    """The user has no profile to generate from."""

    reason = "User profile not found."


class JobNotFoundError(GenerationError):
    """The referenced generation job does not exist."""

    reason = "Job not found."
