"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from meal_planner.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with the active generation mode."""
    container: AppContainer = request.app.state.container
    return {
        "status": "ok",
        "mode": container.mode.name,
        "background_tasks": container.background.pending,
    }


@router.delete("/ingredients/{ingredient_id}", dependencies=[Depends(require_admin)])
async def delete_ingredient(ingredient_id: str, request: Request) -> dict[str, str]:
    """Soft delete a canonical ingredient so it is never recreated."""
    container: AppContainer = request.app.state.container
    if not container.nutrition_cache.soft_delete_ingredient(ingredient_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {"status": "deleted"}


@router.post(
    "/ingredients/{ingredient_id}/restore", dependencies=[Depends(require_admin)]
)
async def restore_ingredient(ingredient_id: str, request: Request) -> dict[str, str]:
    """Clear the soft-delete marker of an ingredient."""
    container: AppContainer = request.app.state.container
    if not container.nutrition_cache.restore_ingredient(ingredient_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {"status": "restored"}


@router.get("/llm-logs", dependencies=[Depends(require_admin)])
async def list_llm_logs(
    request: Request, limit: int = 50, prompt_type: str | None = None
) -> dict[str, object]:
    """Return recent oracle call logs."""
    container: AppContainer = request.app.state.container
    return {"logs": container.audit_service.list_recent(limit, prompt_type)}
