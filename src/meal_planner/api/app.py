"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from meal_planner.api.admin import router as admin_router
from meal_planner.api.request_models import GenerateMealPlanRequest
from meal_planner.app_logging import configure_logging
from meal_planner.containers import AppContainer
from meal_planner.domain.errors import (
    ConfigurationError,
    ContractViolationError,
    GenerationError,
    JobNotFoundError,
    PlanNotFoundError,
    ProfileNotFoundError,
    RateLimitedError,
    TransientOracleError,
)

# Checked in order; the first matching class wins.
_ERROR_STATUSES: tuple[tuple[type[GenerationError], int], ...] = (
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (TransientOracleError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ContractViolationError, status.HTTP_502_BAD_GATEWAY),
    (PlanNotFoundError, status.HTTP_404_NOT_FOUND),
    (ProfileNotFoundError, status.HTTP_404_NOT_FOUND),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def _get_service_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.service_token


async def require_service(
    x_service_token: str | None = Header(default=None),
    service_token: str = Depends(_get_service_token),
) -> None:
    """Ensure requests include a valid service token."""
    if not x_service_token or x_service_token != service_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


def error_status(exc: GenerationError) -> int:
    for error_type, status_code in _ERROR_STATUSES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Meal planner starting in %s mode", container.mode.name)
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(GenerationError)
    async def generation_error_handler(
        request: Request, exc: GenerationError
    ) -> JSONResponse:
        status_code = error_status(exc)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"error": exc.reason})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/users/{user_id}/meal-plans", dependencies=[Depends(require_service)])
    async def generate_meal_plan(
        user_id: str, body: GenerateMealPlanRequest, request: Request
    ) -> dict[str, object]:
        """Generate and store a plan, waiting for the result."""
        state_container: AppContainer = request.app.state.container
        plan_id, plan = await state_container.meal_plan_service.generate(
            user_id,
            theme=body.theme.to_domain() if body.theme else None,
            protein_focus=(
                body.protein_focus.to_domain() if body.protein_focus else None
            ),
        )
        return {"meal_plan_id": plan_id, "plan": plan.model_dump(mode="json")}

    @app.post(
        "/users/{user_id}/meal-plan-jobs",
        dependencies=[Depends(require_service)],
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def start_meal_plan_job(
        user_id: str, body: GenerateMealPlanRequest, request: Request
    ) -> dict[str, object]:
        """Start a background generation job."""
        state_container: AppContainer = request.app.state.container
        job = state_container.job_service.start(
            user_id,
            theme=body.theme.to_domain() if body.theme else None,
            protein_focus=(
                body.protein_focus.to_domain() if body.protein_focus else None
            ),
        )
        return {"job": asdict(job)}

    @app.get("/meal-plan-jobs/{job_id}", dependencies=[Depends(require_service)])
    async def get_meal_plan_job(job_id: str, request: Request) -> dict[str, object]:
        """Return the current status of a generation job."""
        state_container: AppContainer = request.app.state.container
        return {"job": asdict(state_container.job_service.get(job_id))}

    @app.post(
        "/users/{user_id}/meal-plans/{plan_id}/prep",
        dependencies=[Depends(require_service)],
    )
    async def regenerate_prep(
        user_id: str, plan_id: str, request: Request
    ) -> dict[str, object]:
        """Rebuild the prep schedule of an existing plan."""
        state_container: AppContainer = request.app.state.container
        schedule = await state_container.meal_plan_service.regenerate_prep(
            plan_id, user_id
        )
        return {"prep_schedule": schedule.model_dump(mode="json")}

    return app
