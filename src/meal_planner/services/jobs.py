"""Background generation jobs with pollable status."""

import logging
from dataclasses import dataclass
from typing import Protocol

from meal_planner.domain.errors import GenerationError, JobNotFoundError
from meal_planner.domain.generation import (
    GenerationJob,
    JobStatus,
    ProgressEvent,
    RunStage,
)
from meal_planner.domain.profile import MealTheme, ProteinFocus
from meal_planner.services.background import BackgroundTasks
from meal_planner.services.plans import MealPlanService

_logger = logging.getLogger(__name__)

_STAGE_STATUSES: dict[RunStage, JobStatus] = {
    RunStage.INGREDIENTS: JobStatus.GENERATING_INGREDIENTS,
    RunStage.MEALS: JobStatus.GENERATING_MEALS,
    RunStage.FINALIZING: JobStatus.GENERATING_PREP,
}


class JobRepository(Protocol):
    """Persistence interface for generation jobs."""

    def create_job(self, user_id: str) -> GenerationJob:
        """Create a pending job."""

    def update_job(  # noqa: PLR0913
        self,
        job_id: str,
        *,
        status: JobStatus,
        progress_message: str | None = None,
        meal_plan_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Update a job's status fields."""

    def get_job(self, job_id: str) -> GenerationJob | None:
        """Fetch a job by id."""


@dataclass
class GenerationJobService:
    """Starts generation runs in the background and tracks their progress."""

    plans: MealPlanService
    repository: JobRepository
    background: BackgroundTasks

    def start(
        self,
        user_id: str,
        *,
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
    ) -> GenerationJob:
        """Create a pending job and schedule its run on the event loop."""
        job = self.repository.create_job(user_id)
        self.background.spawn(
            self.run(job.id, user_id, theme=theme, protein_focus=protein_focus),
            label=f"meal_plan_job:{job.id}",
        )
        _logger.info("Started meal plan job %s for %s", job.id, user_id)
        return job

    async def run(
        self,
        job_id: str,
        user_id: str,
        *,
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
    ) -> None:
        """Run one job to completion, recording the outcome on the job row."""

        def on_progress(event: ProgressEvent) -> None:
            status = _STAGE_STATUSES.get(event.stage)
            if status is not None:
                self.repository.update_job(
                    job_id, status=status, progress_message=event.message
                )

        try:
            plan_id, _ = await self.plans.generate(
                user_id,
                theme=theme,
                protein_focus=protein_focus,
                job_id=job_id,
                on_progress=on_progress,
            )
        except GenerationError as exc:
            _logger.warning("Meal plan job %s failed: %s", job_id, exc)
            self.repository.update_job(
                job_id, status=JobStatus.FAILED, error_message=exc.reason
            )
            return
        except Exception:
            _logger.exception("Meal plan job %s failed unexpectedly", job_id)
            self.repository.update_job(
                job_id, status=JobStatus.FAILED, error_message=GenerationError.reason
            )
            return
        self.repository.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            progress_message="Meal plan ready!",
            meal_plan_id=plan_id,
        )

    def get(self, job_id: str) -> GenerationJob:
        job = self.repository.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job
