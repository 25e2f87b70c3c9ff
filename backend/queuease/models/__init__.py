"""Pydantic models for QueueEase."""

from .user import User, UserRole, TokenData
from .queue import (
    Shift,
    TokenStatus,
    QueueToken,
    TokenDraft,
    TokenGenerateRequest,
    CompleteRequest,
    QueueConfig,
    ConfigUpdateRequest,
    IssueResult,
    CompletionResult,
    ReconcileResult,
    ServingSummary,
    QueueStatusView,
    MyTokenView,
    Dashboard,
    DashboardStats,
    PauseState,
    ConfigUpdateResult,
    format_token_number,
)
from .events import EventType, QueueEvent

__all__ = [
    # User
    "User", "UserRole", "TokenData",
    # Queue
    "Shift", "TokenStatus", "QueueToken", "TokenDraft", "TokenGenerateRequest",
    "CompleteRequest", "QueueConfig", "ConfigUpdateRequest", "IssueResult",
    "CompletionResult", "ReconcileResult", "ServingSummary", "QueueStatusView", "MyTokenView",
    "Dashboard", "DashboardStats", "PauseState", "ConfigUpdateResult",
    "format_token_number",
    # Events
    "EventType", "QueueEvent",
]
