"""Supabase repository for background generation jobs."""

from dataclasses import dataclass

from supabase import Client

from meal_planner.domain.generation import GenerationJob, JobStatus
from meal_planner.services.jobs import JobRepository

_JOB_COLUMNS = "id, user_id, status, progress_message, meal_plan_id, error_message"


@dataclass
class SupabaseJobRepository(JobRepository):
    """Supabase-backed ``meal_plan_jobs`` repository."""

    client: Client

    def create_job(self, user_id: str) -> GenerationJob:
        response = (
            self.client.table("meal_plan_jobs")
            .insert(
                {
                    "user_id": user_id,
                    "status": JobStatus.PENDING.value,
                    "progress_message": "Queued",
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError(f"Job insert returned no row for user {user_id}")
        return _job_from_row(response.data[0])

    def update_job(  # noqa: PLR0913
        self,
        job_id: str,
        *,
        status: JobStatus,
        progress_message: str | None = None,
        meal_plan_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        payload: dict[str, object] = {"status": status.value}
        if progress_message is not None:
            payload["progress_message"] = progress_message
        if meal_plan_id is not None:
            payload["meal_plan_id"] = meal_plan_id
        if error_message is not None:
            payload["error_message"] = error_message
        self.client.table("meal_plan_jobs").update(payload).eq("id", job_id).execute()

    def get_job(self, job_id: str) -> GenerationJob | None:
        response = (
            self.client.table("meal_plan_jobs")
            .select(_JOB_COLUMNS)
            .eq("id", job_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _job_from_row(response.data[0])


def _job_from_row(row: dict[str, object]) -> GenerationJob:
    return GenerationJob(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        status=JobStatus(row.get("status") or JobStatus.PENDING),
        progress_message=row.get("progress_message"),
        meal_plan_id=row.get("meal_plan_id"),
        error_message=row.get("error_message"),
    )
