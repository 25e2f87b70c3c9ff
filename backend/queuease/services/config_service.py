"""
Queue configuration service.

A single configuration document for the whole process, created lazily on
first access. Every write is a compare-and-set on its ``version``.
"""

import logging
from typing import Any, Callable, Dict, Optional
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..clock import get_clock
from ..config import get_settings
from ..database import Database, QUEUE_CONFIG
from ..errors import ConcurrencyConflict, InvalidCapacityError
from ..models.events import EventType
from ..models.queue import QueueConfig, Shift
from .events import event_bus
from .retry import with_retries

settings = get_settings()
logger = logging.getLogger(__name__)

CONFIG_ID = "queue_config"

CAPACITY_FIELDS = {
    Shift.MORNING: "max_tokens_morning",
    Shift.EVENING: "max_tokens_evening",
}


class QueueConfigService:
    """Capacity limits, pause flag and the current-token pointer."""

    @staticmethod
    def _to_config(doc: dict) -> QueueConfig:
        doc["_id"] = str(doc["_id"])
        return QueueConfig(**doc)

    @classmethod
    async def get_config(cls) -> QueueConfig:
        """Get the configuration, creating it with defaults on first access."""
        configs = Database.get_collection(QUEUE_CONFIG)

        defaults = {
            "max_tokens_morning": settings.DEFAULT_MAX_TOKENS_MORNING,
            "max_tokens_evening": settings.DEFAULT_MAX_TOKENS_EVENING,
            "is_paused": False,
            "current_token_id": None,
            "last_updated": get_clock().now(),
            "version": 0
        }

        try:
            config = await configs.find_one_and_update(
                {"_id": CONFIG_ID},
                {"$setOnInsert": defaults},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Lost the creation race; the document exists now
            config = await configs.find_one({"_id": CONFIG_ID})

        return cls._to_config(config)

    @classmethod
    async def _compare_and_set(cls, expected: QueueConfig, changes: Dict[str, Any]) -> QueueConfig:
        configs = Database.get_collection(QUEUE_CONFIG)

        update_data = dict(changes)
        update_data["last_updated"] = get_clock().now()

        result = await configs.find_one_and_update(
            {"_id": CONFIG_ID, "version": expected.version},
            {"$set": update_data, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise ConcurrencyConflict(
                f"queue configuration changed since version {expected.version}"
            )
        return cls._to_config(result)

    @classmethod
    async def _mutate(
        cls,
        mutate: Callable[[QueueConfig], Dict[str, Any]],
        description: str
    ) -> QueueConfig:
        """Read, derive changes from the fresh read, write; retried on conflict."""
        async def attempt() -> QueueConfig:
            config = await cls.get_config()
            return await cls._compare_and_set(config, mutate(config))

        return await with_retries(attempt, description)

    @classmethod
    async def update_capacities(
        cls,
        max_tokens_morning: Optional[int] = None,
        max_tokens_evening: Optional[int] = None
    ) -> QueueConfig:
        """Change shift capacities.

        Both values are validated before anything is written. A lower cap
        only constrains future issuance; issued tokens are untouched.
        """
        changes = {}
        for shift, value in (
            (Shift.MORNING, max_tokens_morning),
            (Shift.EVENING, max_tokens_evening),
        ):
            if value is None:
                continue
            if value < 1:
                raise InvalidCapacityError(shift.value, value)
            changes[CAPACITY_FIELDS[shift]] = value

        config = await cls._mutate(lambda current: changes, "updating capacity")
        logger.info(
            "Capacity updated: morning=%d evening=%d",
            config.max_tokens_morning, config.max_tokens_evening
        )

        await event_bus.publish(
            EventType.CONFIGURATION_CHANGED,
            config=config.model_dump(mode="json", by_alias=False)
        )
        return config

    @classmethod
    async def set_capacity(cls, shift: Shift, value: int) -> QueueConfig:
        shift = Shift(shift)
        if shift == Shift.MORNING:
            return await cls.update_capacities(max_tokens_morning=value)
        return await cls.update_capacities(max_tokens_evening=value)

    @classmethod
    async def toggle_pause(cls) -> QueueConfig:
        """Flip the pause flag.

        Advisory only: issuance and completion are not gated by it.
        """
        config = await cls._mutate(
            lambda current: {"is_paused": not current.is_paused},
            "toggling pause"
        )
        logger.info("Checkups %s", "paused" if config.is_paused else "resumed")

        await event_bus.publish(
            EventType.PAUSE_STATE_CHANGED,
            is_paused=config.is_paused,
            message=pause_message(config.is_paused)
        )
        return config

    @classmethod
    async def set_current_token(cls, token_id: Optional[str]) -> QueueConfig:
        """Point the cached current-token reference at the serving token."""
        return await cls._mutate(
            lambda current: {"current_token_id": token_id},
            "updating the current token"
        )


def pause_message(is_paused: bool) -> str:
    return "Doctor has paused checkups" if is_paused else "Doctor has resumed checkups"
