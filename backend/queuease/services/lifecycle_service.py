"""
Token lifecycle service.

Owns every status change: pending -> serving -> completed, and
pending -> missed. Completed and missed are terminal.

Completing a token runs the missed cascade and then advances the shift:
pending tokens ordered before the completed one that were already waiting
when it was called are marked missed, and the first waiting token in order
takes the serving claim. Both steps are idempotent so ``reconcile`` can
re-run them after an interrupted completion.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from ..clock import get_clock
from ..errors import AlreadyCompletedError, InvalidTransitionError, NotFoundError
from ..models.events import EventType
from ..models.queue import (
    CompletionResult,
    QueueToken,
    ReconcileResult,
    Shift,
    TokenStatus,
)
from .config_service import QueueConfigService
from .events import event_bus
from .ledger import TokenLedger
from .ordering import first_with_status, index_of, order_tokens
from .retry import with_retries
from .status_service import QueueStatusService

logger = logging.getLogger(__name__)


class LifecycleService:
    """Drives tokens through their states and keeps one token serving."""

    @classmethod
    async def _ordered(cls, day: datetime, shift: Shift) -> List[QueueToken]:
        return order_tokens(await TokenLedger.find_for_day(day, shift=shift))

    @classmethod
    async def _mark_serving(cls, token: QueueToken) -> QueueToken:
        return await TokenLedger.update(token, {
            "status": TokenStatus.SERVING,
            "called_at": get_clock().now()
        })

    @classmethod
    async def _advance_once(
        cls, day: datetime, shift: Shift
    ) -> Tuple[Optional[QueueToken], bool]:
        holder_id = await TokenLedger.serving_claim(day, shift)
        ordered = await cls._ordered(day, shift)

        holder = None
        if holder_id is not None:
            position = index_of(ordered, holder_id)
            holder = ordered[position] if position >= 0 else None

        if holder is not None and holder.status == TokenStatus.SERVING:
            return holder, False

        if holder is not None and holder.status == TokenStatus.PENDING:
            # Claim taken but the status write never landed
            return await cls._mark_serving(holder), True

        candidate = first_with_status(ordered, TokenStatus.PENDING)
        if candidate is None:
            if holder_id is not None:
                await TokenLedger.claim_serving(day, shift, holder_id, None)
            return None, False

        await TokenLedger.claim_serving(day, shift, holder_id, candidate.id)
        return await cls._mark_serving(candidate), True

    @classmethod
    async def advance(
        cls, day: datetime, shift: Shift
    ) -> Tuple[Optional[QueueToken], bool]:
        """Ensure the shift has a serving token whenever one is waiting.

        Returns the serving token (if any) and whether this call promoted it.
        The serving claim is a compare-and-set, so a concurrent promotion
        shows up as a conflict and the retry sees its result.
        """
        serving, promoted = await with_retries(
            lambda: cls._advance_once(day, shift),
            f"advancing the {Shift(shift).value} queue"
        )
        if promoted:
            logger.info(
                "Token %s now serving (%s, %s)",
                serving.token_number, serving.shift.value, f"{day:%Y-%m-%d}"
            )
        return serving, promoted

    @classmethod
    async def _mark_missed(cls, token_id: str) -> Optional[QueueToken]:
        async def attempt() -> Optional[QueueToken]:
            token = await TokenLedger.get(token_id)
            if token is None or token.status != TokenStatus.PENDING:
                return None
            return await TokenLedger.update(token, {
                "status": TokenStatus.MISSED,
                "missed_at": get_clock().now()
            })

        return await with_retries(attempt, "marking a token missed")

    @classmethod
    async def _cascade(cls, completed: QueueToken) -> List[QueueToken]:
        """Mark missed the pending tokens skipped by serving ``completed``.

        A token counts as skipped when it is ordered before the completed
        token and was drawn before that token was called. Tokens drawn
        later, such as an emergency arriving mid-consultation, stay pending.
        """
        called_at = completed.called_at or completed.served_at
        ordered = await cls._ordered(completed.date, completed.shift)
        position = index_of(ordered, completed.id)

        missed = []
        for token in ordered[:max(position, 0)]:
            # Drawn at the call instant counts as arriving after it
            if token.status != TokenStatus.PENDING or token.created_at >= called_at:
                continue
            missed_token = await cls._mark_missed(token.id)
            if missed_token is not None:
                missed.append(missed_token)

        if missed:
            logger.info(
                "Marked %d token(s) missed before %s: %s",
                len(missed), completed.token_number,
                ", ".join(t.token_number for t in missed)
            )
        return missed

    @classmethod
    async def complete_current(cls, token_id: str) -> CompletionResult:
        """Complete a token, cascade missed status and advance the queue."""
        async def attempt() -> QueueToken:
            token = await TokenLedger.get(token_id)
            if token is None:
                raise NotFoundError("Token not found")
            if token.status == TokenStatus.COMPLETED:
                raise AlreadyCompletedError(f"Token {token.token_number} already completed")
            if token.status == TokenStatus.MISSED:
                raise InvalidTransitionError(
                    f"Token {token.token_number} was missed and cannot be completed"
                )
            return await TokenLedger.update(token, {
                "status": TokenStatus.COMPLETED,
                "served_at": get_clock().now()
            })

        completed = await with_retries(attempt, "completing a token")
        logger.info("Token %s completed (%s)", completed.token_number, completed.shift.value)

        missed = await cls._cascade(completed)
        serving, _ = await cls.advance(completed.date, completed.shift)
        await QueueConfigService.set_current_token(serving.id if serving else None)

        result = CompletionResult(
            completed=completed,
            missed_tokens=missed,
            promoted=serving
        )

        await event_bus.publish(
            EventType.TOKEN_COMPLETED,
            token=completed.model_dump(mode="json", by_alias=False),
            next_token=serving.model_dump(mode="json", by_alias=False) if serving else None,
            missed_tokens=[t.model_dump(mode="json", by_alias=False) for t in missed]
        )
        await QueueStatusService.publish_snapshot(completed.shift, completed.date)
        return result

    @classmethod
    async def reconcile(cls, day: Optional[datetime], shift: Shift) -> ReconcileResult:
        """Converge a shift to a consistent state.

        Re-applies the cascade of the most recently completed token and the
        promotion rule. On a consistent shift nothing is written.
        """
        day = get_clock().start_of_day(day or get_clock().now())
        ordered = await cls._ordered(day, shift)

        completed = [t for t in ordered if t.status == TokenStatus.COMPLETED]
        missed = []
        if completed:
            latest = max(completed, key=lambda t: t.served_at or t.created_at)
            missed = await cls._cascade(latest)

        serving, promoted = await cls.advance(day, shift)

        config = await QueueConfigService.get_config()
        serving_id = serving.id if serving else None
        stale_pointer = (
            config.current_token_id is not None
            and config.current_token_id != serving_id
            and index_of(ordered, config.current_token_id) >= 0
        )
        if stale_pointer or (serving_id is not None and config.current_token_id != serving_id):
            await QueueConfigService.set_current_token(serving_id)

        return ReconcileResult(missed_tokens=missed, serving=serving, promoted=promoted)
