"""
Queue event records handed to the notification transport.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    TOKEN_ISSUED = "TokenIssued"
    TOKEN_COMPLETED = "TokenCompleted"
    QUEUE_ADVANCED = "QueueAdvanced"
    QUEUE_SNAPSHOT_CHANGED = "QueueSnapshotChanged"
    CONFIGURATION_CHANGED = "ConfigurationChanged"
    PAUSE_STATE_CHANGED = "PauseStateChanged"


class QueueEvent(BaseModel):
    """Plain data record describing something notable in the queue."""
    type: EventType
    payload: Dict[str, Any] = {}
    emitted_at: datetime = Field(default_factory=datetime.now)
