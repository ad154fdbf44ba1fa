"""Single entry point for structured calls to the generative oracle."""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from meal_planner.domain.errors import (
    ConfigurationError,
    MalformedResponseError,
    TransientOracleError,
    TruncatedResponseError,
)
from meal_planner.domain.generation import LlmCallRecord, OracleReply
from meal_planner.services.audit import LlmAuditService
from meal_planner.services.modes import GenerationMode

_logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)


class OracleClient(Protocol):
    """Interface for a structured-output LLM call."""

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
        """Return the oracle's structured reply."""


@dataclass(frozen=True)
class _CallContext:
    prompt: str
    prompt_type: str
    model: str
    user_id: str
    job_id: str | None


@dataclass
class GenerationClient:
    """Calls the oracle with retries, truncation checks and audit logging."""

    oracle: OracleClient
    audit: LlmAuditService
    mode: GenerationMode
    model: str
    reasoning_effort: str | None = None
    store: bool = False
    max_retries: int = 2
    backoff_seconds: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def call(  # noqa: PLR0913
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        response_model: type[ResultT],
        prompt_type: str,
        user_id: str,
        max_tokens: int,
        model: str | None = None,
        max_retries: int | None = None,
        job_id: str | None = None,
        validate: Callable[[ResultT], None] | None = None,
    ) -> ResultT:
        """Call the oracle and return a validated ``response_model``.

        Truncated replies fail immediately with TruncatedResponseError, and
        so does any error that is not a TransientOracleError. Transient and
        malformed replies are retried with exponential backoff until the
        retry budget is spent, then the last error propagates.
        """
        resolved_model, resolved_tokens = self.mode.resolve(
            prompt_type, model or self.model, max_tokens
        )
        retries = self.max_retries if max_retries is None else max_retries
        context = _CallContext(
            prompt=prompt,
            prompt_type=prompt_type,
            model=resolved_model,
            user_id=user_id,
            job_id=job_id,
        )

        attempt = 0
        while True:
            started = time.monotonic()
            try:
                reply = await self.oracle.invoke(
                    model=resolved_model,
                    prompt=prompt,
                    schema=schema,
                    schema_name=schema_name,
                    max_tokens=resolved_tokens,
                    reasoning_effort=self.reasoning_effort,
                    store=self.store,
                )
            except TransientOracleError as exc:
                self._record(context, started, error=f"{type(exc).__name__}: {exc}")
                last_error: Exception = exc
            except ConfigurationError as exc:
                self._record(context, started, error=str(exc))
                raise
            except Exception as exc:
                self._record(context, started, error=f"{type(exc).__name__}: {exc}")
                raise
            else:
                output = _reply_text(reply)
                if reply.truncated:
                    self._record(
                        context,
                        started,
                        output=output,
                        tokens=reply.output_tokens,
                        error="truncated",
                    )
                    raise TruncatedResponseError(
                        f"{prompt_type} response truncated at {resolved_tokens} "
                        "output tokens; raise the token ceiling",
                        raw_output=output,
                    )
                try:
                    result = _parse_reply(reply, response_model, validate)
                except MalformedResponseError as exc:
                    self._record(
                        context,
                        started,
                        output=output,
                        tokens=reply.output_tokens,
                        error=str(exc),
                    )
                    last_error = exc
                else:
                    self._record(
                        context, started, output=output, tokens=reply.output_tokens
                    )
                    return result

            if attempt >= retries:
                _logger.error(
                    "Oracle call %s failed after %s attempts: %s",
                    prompt_type,
                    attempt + 1,
                    last_error,
                )
                raise last_error
            delay = self.backoff_seconds * 2**attempt
            _logger.warning(
                "Oracle call %s failed (attempt %s/%s), retrying in %.1fs: %s",
                prompt_type,
                attempt + 1,
                retries + 1,
                delay,
                last_error,
            )
            await self.sleep(delay)
            attempt += 1

    def _record(
        self,
        context: _CallContext,
        started: float,
        *,
        output: str = "",
        tokens: int | None = None,
        error: str | None = None,
    ) -> None:
        self.audit.record(
            LlmCallRecord(
                user_id=context.user_id,
                prompt_type=context.prompt_type,
                model=context.model,
                prompt=context.prompt,
                output=output,
                tokens_used=tokens,
                duration_ms=int((time.monotonic() - started) * 1000),
                job_id=context.job_id,
                error=error,
            )
        )


def _reply_text(reply: OracleReply) -> str:
    if reply.raw_output is not None:
        return reply.raw_output
    if reply.payload is not None:
        return json.dumps(reply.payload)
    return ""


def _parse_reply(
    reply: OracleReply,
    response_model: type[ResultT],
    validate: Callable[[ResultT], None] | None,
) -> ResultT:
    if reply.payload is None:
        raise MalformedResponseError(
            "Oracle returned no structured output", raw_output=reply.raw_output
        )
    try:
        result = response_model.model_validate(reply.payload)
    except ValidationError as exc:
        raise MalformedResponseError(
            f"Oracle output did not match {response_model.__name__}: "
            f"{exc.error_count()} errors",
            raw_output=reply.raw_output,
        ) from exc
    if validate is not None:
        validate(result)
    return result
