"""Services package for QueueEase."""

from .auth_service import AuthService
from .config_service import QueueConfigService
from .ledger import TokenLedger
from .status_service import QueueStatusService
from .lifecycle_service import LifecycleService
from .allocation_service import AllocationService
from .events import EventBus, event_bus

__all__ = [
    "AuthService",
    "QueueConfigService",
    "TokenLedger",
    "QueueStatusService",
    "LifecycleService",
    "AllocationService",
    "EventBus",
    "event_bus"
]
