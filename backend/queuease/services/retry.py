"""
Bounded retry of compare-and-set operations.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..config import get_settings
from ..errors import ConcurrencyConflict, TransientFailure

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_SECONDS = 0.005
MAX_BACKOFF_SECONDS = 0.1


def backoff_delay(attempt: int) -> float:
    """Randomized delay before retry ``attempt + 1``.

    Full jitter spreads the losers of one race over the window so the next
    round is not another simultaneous read.
    """
    return random.uniform(0, min(BACKOFF_SECONDS * attempt, MAX_BACKOFF_SECONDS))


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    description: str,
    attempts: Optional[int] = None
) -> T:
    """Run ``operation`` until it stops raising ``ConcurrencyConflict``.

    Each attempt must re-read the state it depends on. After ``attempts``
    lost races the conflict surfaces as ``TransientFailure``.
    """
    attempts = attempts or settings.MAX_CONFLICT_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConcurrencyConflict as exc:
            logger.warning(
                "Conflict while %s (attempt %d/%d): %s",
                description, attempt, attempts, exc
            )
            if attempt < attempts:
                await asyncio.sleep(backoff_delay(attempt))
    raise TransientFailure(
        f"Could not finish {description} under concurrent updates, please retry"
    )
