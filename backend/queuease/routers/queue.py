"""
Patient-facing token and queue status API routes.
"""

from fastapi import APIRouter, status, Depends, Query

from ..models.queue import (
    IssueResult,
    MyTokenView,
    QueueStatusView,
    Shift,
    TokenGenerateRequest,
)
from ..models.user import User
from ..services.allocation_service import AllocationService
from ..services.status_service import QueueStatusService
from .dependencies import get_current_user, require_patient

router = APIRouter(prefix="/tokens", tags=["Queue & Tokens"])


@router.post("/generate", response_model=IssueResult, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def generate_token(
    request: TokenGenerateRequest,
    current_user: User = Depends(require_patient)
):
    """Draw a token for the calling patient."""
    return await AllocationService.issue_token(
        current_user.id,
        request.shift,
        is_emergency=request.is_emergency
    )


@router.get("/my-token", response_model=MyTokenView, response_model_by_alias=False)
async def get_my_token(current_user: User = Depends(require_patient)):
    """Get today's token of the calling patient with its position and ETA."""
    return await QueueStatusService.patient_status(current_user.id)


@router.get("/queue-status", response_model=QueueStatusView)
async def get_queue_status(
    shift: Shift = Query(..., description="morning or evening"),
    current_user: User = Depends(get_current_user)
):
    """Get the public queue status of a shift."""
    return await QueueStatusService.snapshot(shift)
