"""
Token allocation service.
"""

import logging
from datetime import datetime
from typing import Optional

from ..clock import get_clock
from ..config import get_settings
from ..errors import (
    CapacityExceededError,
    DuplicateEmergencyError,
    DuplicateTokenError,
    MissedTokenError,
)
from ..models.events import EventType
from ..models.queue import IssueResult, QueueToken, Shift, TokenDraft, TokenStatus
from .config_service import QueueConfigService
from .events import event_bus
from .ledger import TokenLedger
from .lifecycle_service import LifecycleService
from .retry import with_retries
from .status_service import QueueStatusService

settings = get_settings()
logger = logging.getLogger(__name__)


class AllocationService:
    """Issues tokens and assigns their sequence numbers."""

    @classmethod
    async def _validate(
        cls, patient_id: str, shift: Shift, is_emergency: bool, day: datetime
    ) -> None:
        existing = await TokenLedger.find_patient_token(patient_id, day, shift)
        if existing is not None:
            if existing.status == TokenStatus.MISSED:
                raise MissedTokenError(
                    f"You missed your token for the {shift.value} shift. "
                    "Cannot generate a new token."
                )
            raise DuplicateTokenError(
                f"You already have a token for the {shift.value} shift today "
                f"({existing.token_number})"
            )

        if is_emergency:
            emergency = await TokenLedger.find_patient_emergency(patient_id, day)
            if emergency is not None:
                raise DuplicateEmergencyError(
                    f"You already have an emergency token today ({emergency.token_number})"
                )
            return

        config = await QueueConfigService.get_config()
        capacity = config.capacity_for(shift)
        issued = await TokenLedger.count_partition(day, shift, is_emergency=False)
        if issued >= capacity:
            raise CapacityExceededError(shift.value, capacity)

    @classmethod
    async def _allocate(
        cls, patient_id: str, shift: Shift, is_emergency: bool, day: datetime
    ) -> QueueToken:
        """Validate against a fresh read and insert the next number.

        The unique indexes reject a number or patient slot taken since the
        read; the caller retries, which re-validates from scratch.
        """
        await cls._validate(patient_id, shift, is_emergency, day)

        last = await TokenLedger.max_sequence(day, shift, is_emergency)
        if not is_emergency:
            config = await QueueConfigService.get_config()
            capacity = config.capacity_for(shift)
            # Numbers are dense, so the next number is also the new count
            if last + 1 > capacity:
                raise CapacityExceededError(shift.value, capacity)

        draft = TokenDraft(
            patient_id=patient_id,
            shift=shift,
            date=day,
            is_emergency=is_emergency,
            sequence_number=last + 1,
            created_at=get_clock().now()
        )
        return await TokenLedger.create(draft)

    @classmethod
    async def _attempts(cls, shift: Shift) -> int:
        """Retry bound for allocating in a partition.

        Every lost race on the sequence index means another token of the
        partition was inserted, and the numbers tried only go up. At most
        ``capacity`` regular tokens exist, so that many extra attempts always
        end in a token or a capacity error. Emergency tokens share the bound.
        """
        config = await QueueConfigService.get_config()
        return settings.MAX_CONFLICT_RETRIES + config.capacity_for(shift)

    @classmethod
    async def issue_token(
        cls,
        patient_id: str,
        shift: Shift,
        is_emergency: bool = False,
        day: Optional[datetime] = None
    ) -> IssueResult:
        """Issue a token for a patient and start the queue if it is idle."""
        shift = Shift(shift)
        day = get_clock().start_of_day(day or get_clock().now())

        token = await with_retries(
            lambda: cls._allocate(patient_id, shift, is_emergency, day),
            f"issuing a {shift.value} token",
            attempts=await cls._attempts(shift)
        )
        logger.info(
            "Issued token %s to patient %s (%s, %s)",
            token.token_number, patient_id, shift.value, f"{day:%Y-%m-%d}"
        )

        serving, promoted = await LifecycleService.advance(day, shift)
        if promoted:
            await QueueConfigService.set_current_token(serving.id)
            if serving.id == token.id:
                token = serving

        await event_bus.publish(
            EventType.TOKEN_ISSUED,
            token=token.model_dump(mode="json", by_alias=False)
        )
        if promoted:
            await event_bus.publish(
                EventType.QUEUE_ADVANCED,
                shift=shift.value,
                serving=serving.model_dump(mode="json", by_alias=False)
            )
        await QueueStatusService.publish_snapshot(shift, day)

        return IssueResult(token=token, promoted=serving if promoted else None)
