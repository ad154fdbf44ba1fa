"""Audit logging for oracle calls."""

import logging
from dataclasses import dataclass
from typing import Protocol

from meal_planner.domain.generation import LlmCallRecord
from meal_planner.services.background import BackgroundTasks

_logger = logging.getLogger(__name__)


class LlmLogRepository(Protocol):
    """Persistence interface for oracle call logs."""

    def create_entry(self, record: LlmCallRecord) -> None:
        """Create an LLM log row."""

    def list_entries(
        self, limit: int, prompt_type: str | None = None
    ) -> list[dict[str, object]]:
        """Return recent LLM log rows."""


@dataclass
class LlmAuditService:
    """Records one log entry per oracle attempt without blocking the caller."""

    repository: LlmLogRepository
    background: BackgroundTasks

    def record(self, record: LlmCallRecord) -> None:
        """Schedule a log write; failures are logged and dropped."""
        try:
            self.background.run_sync(
                lambda: self.repository.create_entry(record),
                label=f"llm_log:{record.prompt_type}",
            )
        except RuntimeError:
            _logger.exception(
                "Could not schedule LLM log for %s", record.prompt_type
            )

    def list_recent(
        self, limit: int = 50, prompt_type: str | None = None
    ) -> list[dict[str, object]]:
        """Return recent log rows for admin review."""
        return self.repository.list_entries(limit, prompt_type)
