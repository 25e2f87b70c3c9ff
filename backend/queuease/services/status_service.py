"""
Queue status projection: read-only views of the day's queue, and their broadcast.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from ..config import get_settings
from ..models.events import EventType
from ..models.queue import (
    Dashboard,
    DashboardStats,
    MyTokenView,
    QueueStatusView,
    QueueToken,
    ServingSummary,
    Shift,
    TokenStatus,
    WAITING_STATUSES,
)
from .config_service import QueueConfigService
from .events import event_bus
from .ledger import TokenLedger
from .ordering import first_with_status, index_of, order_tokens

settings = get_settings()

IMMEDIATE = "Immediate"
NOT_STARTED = "Queue not started"


def current_serving(ordered: List[QueueToken]) -> Optional[QueueToken]:
    """Serving token, else first pending emergency, else first pending."""
    return (
        first_with_status(ordered, TokenStatus.SERVING)
        or first_with_status(ordered, TokenStatus.PENDING, emergency=True)
        or first_with_status(ordered, TokenStatus.PENDING)
    )


class QueueStatusService:
    """Projects who is serving, queue length, position and ETA."""

    @classmethod
    async def _ordered(cls, shift: Shift, day: Optional[datetime]) -> List[QueueToken]:
        return order_tokens(await TokenLedger.find_for_day(day, shift=shift))

    @staticmethod
    def position_of(
        token: QueueToken,
        ordered: List[QueueToken],
        avg_service_minutes: Optional[int] = None
    ) -> Tuple[Optional[int], str]:
        """Position in line and ETA text for ``token``.

        Emergency tokens are always first and seen immediately. Regular
        tokens count the pending or serving tokens ordered before them.
        """
        if token.is_emergency:
            return 1, IMMEDIATE

        position = index_of(ordered, token.id)
        if position < 0:
            return None, NOT_STARTED

        ahead = sum(1 for t in ordered[:position] if t.status in WAITING_STATUSES)
        minutes = avg_service_minutes
        if minutes is None:
            minutes = settings.AVG_SERVICE_MINUTES
        return ahead + 1, f"{ahead * minutes} minutes"

    @classmethod
    async def snapshot(
        cls,
        shift: Shift,
        day: Optional[datetime] = None,
        token: Optional[QueueToken] = None
    ) -> QueueStatusView:
        """Public queue status of a shift, with the position of ``token`` if given."""
        ordered = await cls._ordered(shift, day)
        serving = current_serving(ordered)

        view = QueueStatusView(
            shift=shift,
            current_serving=ServingSummary(
                token_number=serving.token_number,
                is_emergency=serving.is_emergency
            ) if serving else None,
            total_tokens=len(ordered)
        )

        if token is not None:
            view.waiting_position, view.estimated_wait = cls.position_of(token, ordered)
        return view

    @classmethod
    async def patient_status(
        cls, patient_id: str, day: Optional[datetime] = None
    ) -> MyTokenView:
        """The patient's latest token of the day with its queue status."""
        token = await TokenLedger.latest_for_patient(patient_id, day)
        if token is None:
            return MyTokenView()

        queue_status = await cls.snapshot(token.shift, token.date, token)
        return MyTokenView(token=token, queue_status=queue_status)

    @classmethod
    async def dashboard(
        cls, shift: Optional[Shift] = None, day: Optional[datetime] = None
    ) -> Dashboard:
        """All of the day's tokens in serving order, with counts."""
        tokens = await TokenLedger.find_for_day(day, shift=shift)
        ordered = order_tokens(tokens)
        config = await QueueConfigService.get_config()

        def count(status: TokenStatus) -> int:
            return sum(1 for t in ordered if t.status == status)

        stats = DashboardStats(
            total=len(ordered),
            pending=count(TokenStatus.PENDING),
            serving=count(TokenStatus.SERVING),
            completed=count(TokenStatus.COMPLETED),
            missed=count(TokenStatus.MISSED),
            emergency=sum(1 for t in ordered if t.is_emergency)
        )

        return Dashboard(
            tokens=ordered,
            config=config,
            current_serving=first_with_status(ordered, TokenStatus.SERVING),
            stats=stats
        )

    @classmethod
    async def publish_snapshot(cls, shift: Shift, day: Optional[datetime] = None) -> None:
        """Broadcast the recomputed public status of a shift."""
        snapshot = await cls.snapshot(shift, day)
        await event_bus.publish(
            EventType.QUEUE_SNAPSHOT_CHANGED,
            **snapshot.model_dump(mode="json")
        )
