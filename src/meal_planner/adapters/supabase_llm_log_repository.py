"""Supabase repository for oracle call logs."""

from dataclasses import dataclass

from supabase import Client

from meal_planner.domain.generation import LlmCallRecord
from meal_planner.services.audit import LlmLogRepository


@dataclass
class SupabaseLlmLogRepository(LlmLogRepository):
    """Supabase-backed LLM log repository."""

    client: Client

    def create_entry(self, record: LlmCallRecord) -> None:
        """Create an LLM log row."""
        self.client.table("llm_logs").insert(
            {
                "user_id": record.user_id,
                "prompt": record.prompt,
                "output": record.output,
                "model": record.model,
                "prompt_type": record.prompt_type,
                "tokens_used": record.tokens_used,
                "duration_ms": record.duration_ms,
                "job_id": record.job_id,
                "error": record.error,
            }
        ).execute()

    def list_entries(
        self, limit: int, prompt_type: str | None = None
    ) -> list[dict[str, object]]:
        """Return recent LLM log rows without prompt bodies."""
        query = self.client.table("llm_logs").select(
            "id, user_id, model, prompt_type, tokens_used, duration_ms, "
            "job_id, error, created_at"
        )
        if prompt_type:
            query = query.eq("prompt_type", prompt_type)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return response.data or []
