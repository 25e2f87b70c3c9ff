"""
Doctor console API routes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models.queue import (
    CompleteRequest,
    CompletionResult,
    ConfigUpdateRequest,
    ConfigUpdateResult,
    Dashboard,
    PauseState,
    Shift,
)
from ..models.user import User
from ..services.config_service import QueueConfigService
from ..services.lifecycle_service import LifecycleService
from ..services.status_service import QueueStatusService
from .dependencies import require_doctor

router = APIRouter(prefix="/doctor", tags=["Doctor"])


@router.get("/dashboard", response_model=Dashboard, response_model_by_alias=False)
async def get_dashboard(
    shift: Optional[Shift] = Query(None, description="Limit to one shift"),
    current_user: User = Depends(require_doctor)
):
    """Get today's tokens in serving order with counts and configuration."""
    return await QueueStatusService.dashboard(shift)


@router.post("/complete", response_model=CompletionResult, response_model_by_alias=False)
async def complete_token(
    request: CompleteRequest,
    current_user: User = Depends(require_doctor)
):
    """Mark a token completed and advance the queue."""
    return await LifecycleService.complete_current(request.token_id)


@router.post("/pause-resume", response_model=PauseState)
async def pause_resume(current_user: User = Depends(require_doctor)):
    """Toggle the checkup pause flag."""
    config = await QueueConfigService.toggle_pause()
    return PauseState(
        message="Checkups paused" if config.is_paused else "Checkups resumed",
        is_paused=config.is_paused
    )


@router.put("/config", response_model=ConfigUpdateResult, response_model_by_alias=False)
async def update_config(
    request: ConfigUpdateRequest,
    current_user: User = Depends(require_doctor)
):
    """Update shift capacities."""
    config = await QueueConfigService.update_capacities(
        max_tokens_morning=request.max_tokens_morning,
        max_tokens_evening=request.max_tokens_evening
    )
    return ConfigUpdateResult(config=config)


@router.post("/reconcile/{shift}")
async def reconcile_shift(
    shift: Shift,
    current_user: User = Depends(require_doctor)
):
    """Re-run the missed cascade and promotion for today's shift."""
    result = await LifecycleService.reconcile(None, shift)
    return result.model_dump(mode="json", by_alias=False)
