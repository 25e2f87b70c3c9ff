"""
Queue token and queue configuration models.
"""

from pydantic import BaseModel, Field, computed_field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class Shift(str, Enum):
    """Daily service windows."""
    MORNING = "morning"
    EVENING = "evening"


class TokenStatus(str, Enum):
    """Token lifecycle states."""
    PENDING = "pending"
    SERVING = "serving"
    COMPLETED = "completed"
    MISSED = "missed"


WAITING_STATUSES = (TokenStatus.PENDING, TokenStatus.SERVING)


def format_token_number(sequence_number: int, is_emergency: bool) -> str:
    """Display form of a sequence number: ``7`` or ``E-2``."""
    return f"E-{sequence_number}" if is_emergency else str(sequence_number)


class QueueToken(BaseModel):
    """Queue token as stored in the ledger."""
    id: str = Field(..., alias="_id")
    patient_id: str
    shift: Shift
    date: datetime = Field(..., description="Local midnight of the token's day")
    is_emergency: bool = False
    sequence_number: int = Field(..., ge=1)
    status: TokenStatus = TokenStatus.PENDING
    created_at: datetime
    called_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    missed_at: Optional[datetime] = None
    version: int = 0

    @computed_field
    @property
    def token_number(self) -> str:
        return format_token_number(self.sequence_number, self.is_emergency)

    class Config:
        populate_by_name = True


class TokenDraft(BaseModel):
    """Token about to be inserted; the ledger fills in the rest."""
    patient_id: str
    shift: Shift
    date: datetime
    is_emergency: bool = False
    sequence_number: int = Field(..., ge=1)
    created_at: datetime


class TokenGenerateRequest(BaseModel):
    """Request a token for the calling patient."""
    shift: Shift
    is_emergency: bool = False


class CompleteRequest(BaseModel):
    """Mark a token as completed."""
    token_id: str


class QueueConfig(BaseModel):
    """Process-wide queue configuration."""
    id: str = Field(..., alias="_id")
    max_tokens_morning: int
    max_tokens_evening: int
    is_paused: bool = False
    current_token_id: Optional[str] = None
    last_updated: datetime
    version: int = 0

    def capacity_for(self, shift: Shift) -> int:
        if shift == Shift.MORNING:
            return self.max_tokens_morning
        return self.max_tokens_evening

    class Config:
        populate_by_name = True


class ConfigUpdateRequest(BaseModel):
    """Change shift capacities; omitted fields stay as they are."""
    max_tokens_morning: Optional[int] = None
    max_tokens_evening: Optional[int] = None


class IssueResult(BaseModel):
    """Outcome of issuing a token."""
    message: str = "Token generated successfully"
    token: QueueToken
    promoted: Optional[QueueToken] = None


class CompletionResult(BaseModel):
    """Outcome of completing a token, cascade included."""
    message: str = "Token marked as completed"
    completed: QueueToken
    missed_tokens: List[QueueToken] = []
    promoted: Optional[QueueToken] = None


class ReconcileResult(BaseModel):
    """Outcome of re-running cascade and promotion on a shift."""
    missed_tokens: List[QueueToken] = []
    serving: Optional[QueueToken] = None
    promoted: bool = False


class ServingSummary(BaseModel):
    token_number: str
    is_emergency: bool


class QueueStatusView(BaseModel):
    """Publicly visible queue state for one shift."""
    shift: Shift
    current_serving: Optional[ServingSummary] = None
    total_tokens: int = 0
    waiting_position: Optional[int] = None
    estimated_wait: str = "Queue not started"


class MyTokenView(BaseModel):
    token: Optional[QueueToken] = None
    queue_status: Optional[QueueStatusView] = None


class DashboardStats(BaseModel):
    total: int = 0
    pending: int = 0
    serving: int = 0
    completed: int = 0
    missed: int = 0
    emergency: int = 0


class Dashboard(BaseModel):
    """Doctor's view of the day."""
    tokens: List[QueueToken] = []
    config: QueueConfig
    current_serving: Optional[QueueToken] = None
    stats: DashboardStats


class PauseState(BaseModel):
    message: str
    is_paused: bool


class ConfigUpdateResult(BaseModel):
    message: str = "Configuration updated"
    config: QueueConfig
