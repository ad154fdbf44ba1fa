"""OpenAI Responses API client for structured generation."""

import json
import logging
from dataclasses import dataclass

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)

from meal_planner.domain.errors import (
    ConfigurationError,
    RateLimitedError,
    TransientOracleError,
)
from meal_planner.domain.generation import OracleReply
from meal_planner.services.generation import OracleClient

_logger = logging.getLogger(__name__)

# Client errors worth retrying; every other 4xx is a permanent fault.
_RETRYABLE_STATUSES = frozenset({408, 409})


@dataclass
class OpenAIGenerationClient(OracleClient):
    """Oracle client backed by the OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(
        cls, api_key: str, timeout_seconds: float = 600.0
    ) -> "OpenAIGenerationClient":
        """Create an OpenAI generation client."""
        return cls(client=AsyncOpenAI(api_key=api_key, timeout=timeout_seconds))

    async def invoke(  # noqa: PLR0913
        self,
        *,
        model: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        max_tokens: int,
        reasoning_effort: str | None,
        store: bool,
    ) -> OracleReply:
        """Call OpenAI Responses API with a strict JSON schema."""
        request_payload: dict[str, object] = {
            "model": model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            },
            "max_output_tokens": max_tokens,
            "store": store,
        }
        if reasoning_effort:
            request_payload["reasoning"] = {"effort": reasoning_effort}

        try:
            response = await self.client.responses.create(**request_payload)
        except RateLimitError as exc:
            raise RateLimitedError(f"OpenAI rate limit: {exc}") from exc
        except (APITimeoutError, APIConnectionError, InternalServerError) as exc:
            raise TransientOracleError(f"OpenAI request failed: {exc}") from exc
        except APIStatusError as exc:
            if exc.status_code in _RETRYABLE_STATUSES or exc.status_code >= 500:
                raise TransientOracleError(f"OpenAI request failed: {exc}") from exc
            raise ConfigurationError(f"OpenAI rejected the request: {exc}") from exc

        output_tokens = _output_tokens(response)
        incomplete = getattr(response, "incomplete_details", None)
        if getattr(response, "status", None) == "incomplete":
            reason = getattr(incomplete, "reason", None) or "incomplete"
            return OracleReply(
                payload=None,
                stop_reason=reason,
                output_tokens=output_tokens,
                raw_output=response.output_text,
            )

        output_text = response.output_text
        if not output_text:
            _logger.warning("OpenAI returned an empty response for %s", schema_name)
            return OracleReply(
                payload=None, stop_reason="empty", output_tokens=output_tokens
            )
        try:
            payload = json.loads(output_text)
        except json.JSONDecodeError:
            _logger.warning("OpenAI returned invalid JSON for %s", schema_name)
            payload = None
        if payload is not None and not isinstance(payload, dict):
            payload = None
        return OracleReply(
            payload=payload,
            stop_reason=getattr(response, "status", None),
            output_tokens=output_tokens,
            raw_output=output_text,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()


def _output_tokens(response: object) -> int | None:
    usage = getattr(response, "usage", None)
    tokens = getattr(usage, "output_tokens", None)
    return tokens if isinstance(tokens, int) else None
