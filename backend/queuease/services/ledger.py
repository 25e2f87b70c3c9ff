"""
Token ledger: the authoritative store of queue tokens.

Writes are compare-and-set. Inserts are guarded by the unique indexes
created in ``Database.create_indexes``; status writes by the token's
``version``; the serving claim of a shift by its lane record.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument, DESCENDING, ASCENDING
from pymongo.errors import DuplicateKeyError

from ..clock import get_clock
from ..database import Database, TOKENS, QUEUE_LANES
from ..errors import ConcurrencyConflict
from ..models.queue import QueueToken, TokenDraft, TokenStatus, Shift

logger = logging.getLogger(__name__)

EMERGENCY_LANE = "emergency"


def lane_key(day: datetime, shift: Shift) -> str:
    return f"{day:%Y-%m-%d}:{Shift(shift).value}"


class TokenLedger:
    """Token storage with per-token invariants enforced on write."""

    @staticmethod
    def _to_token(doc: dict) -> QueueToken:
        doc["_id"] = str(doc["_id"])
        return QueueToken(**doc)

    @staticmethod
    def _day_filter(day: Optional[datetime] = None) -> dict:
        start, end = get_clock().day_bounds(day)
        return {"$gte": start, "$lt": end}

    @classmethod
    async def create(cls, draft: TokenDraft) -> QueueToken:
        """Insert a pending token.

        Raises ``ConcurrencyConflict`` when a unique index rejects it: the
        sequence number was taken, or the patient got a token concurrently.
        """
        tokens = Database.get_collection(TOKENS)

        token_doc = {
            "patient_id": draft.patient_id,
            "shift": draft.shift.value,
            "date": get_clock().start_of_day(draft.date),
            "is_emergency": draft.is_emergency,
            "lane": EMERGENCY_LANE if draft.is_emergency else draft.shift.value,
            "sequence_number": draft.sequence_number,
            "status": TokenStatus.PENDING.value,
            "created_at": draft.created_at,
            "called_at": None,
            "served_at": None,
            "missed_at": None,
            "version": 0
        }

        try:
            result = await tokens.insert_one(token_doc)
        except DuplicateKeyError as exc:
            raise ConcurrencyConflict(
                f"token {draft.sequence_number} for {draft.shift.value} "
                f"(emergency={draft.is_emergency}) rejected: {exc}"
            ) from exc

        token_doc["_id"] = result.inserted_id
        return cls._to_token(token_doc)

    @classmethod
    async def get(cls, token_id: str) -> Optional[QueueToken]:
        """Get token by ID."""
        tokens = Database.get_collection(TOKENS)

        try:
            object_id = ObjectId(token_id)
        except (InvalidId, TypeError):
            return None

        token = await tokens.find_one({"_id": object_id})
        if token:
            return cls._to_token(token)
        return None

    @classmethod
    async def find_for_day(
        cls,
        day: Optional[datetime] = None,
        shift: Optional[Shift] = None,
        status: Optional[TokenStatus] = None,
        is_emergency: Optional[bool] = None,
        patient_id: Optional[str] = None
    ) -> List[QueueToken]:
        """Tokens of one day, oldest first, narrowed by the given filters."""
        tokens = Database.get_collection(TOKENS)

        filter_query: Dict[str, Any] = {"date": cls._day_filter(day)}
        if shift is not None:
            filter_query["shift"] = Shift(shift).value
        if status is not None:
            filter_query["status"] = TokenStatus(status).value
        if is_emergency is not None:
            filter_query["is_emergency"] = is_emergency
        if patient_id is not None:
            filter_query["patient_id"] = patient_id

        cursor = tokens.find(filter_query).sort("created_at", ASCENDING)

        results = []
        async for token in cursor:
            results.append(cls._to_token(token))
        return results

    @classmethod
    async def find_patient_token(
        cls, patient_id: str, day: datetime, shift: Shift
    ) -> Optional[QueueToken]:
        found = await cls.find_for_day(day, shift=shift, patient_id=patient_id)
        return found[0] if found else None

    @classmethod
    async def find_patient_emergency(
        cls, patient_id: str, day: datetime
    ) -> Optional[QueueToken]:
        found = await cls.find_for_day(day, is_emergency=True, patient_id=patient_id)
        return found[0] if found else None

    @classmethod
    async def latest_for_patient(
        cls, patient_id: str, day: Optional[datetime] = None
    ) -> Optional[QueueToken]:
        """Most recently drawn token of the patient on that day."""
        found = await cls.find_for_day(day, patient_id=patient_id)
        return found[-1] if found else None

    @classmethod
    async def count_partition(
        cls, day: datetime, shift: Shift, is_emergency: bool
    ) -> int:
        tokens = Database.get_collection(TOKENS)
        return await tokens.count_documents({
            "date": cls._day_filter(day),
            "shift": Shift(shift).value,
            "is_emergency": is_emergency
        })

    @classmethod
    async def max_sequence(
        cls, day: datetime, shift: Shift, is_emergency: bool
    ) -> int:
        """Highest sequence number issued in the partition, 0 if none."""
        tokens = Database.get_collection(TOKENS)

        cursor = tokens.find({
            "date": cls._day_filter(day),
            "shift": Shift(shift).value,
            "is_emergency": is_emergency
        }).sort("sequence_number", DESCENDING).limit(1)

        latest = await cursor.to_list(length=1)
        return latest[0]["sequence_number"] if latest else 0

    @classmethod
    async def update(
        cls,
        token: QueueToken,
        changes: Dict[str, Any]
    ) -> QueueToken:
        """Apply ``changes`` only if the stored token still matches ``token``.

        The precondition is the status and version the caller read. Raises
        ``ConcurrencyConflict`` when another writer got there first.
        """
        tokens = Database.get_collection(TOKENS)

        update_data = {
            key: value.value if isinstance(value, TokenStatus) else value
            for key, value in changes.items()
        }

        result = await tokens.find_one_and_update(
            {
                "_id": ObjectId(token.id),
                "status": token.status.value,
                "version": token.version
            },
            {"$set": update_data, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise ConcurrencyConflict(
                f"token {token.token_number} changed since it was read "
                f"(expected {token.status.value} v{token.version})"
            )
        return cls._to_token(result)

    @classmethod
    async def serving_claim(cls, day: datetime, shift: Shift) -> Optional[str]:
        """Token id holding the serving claim of the shift, if any."""
        lanes = Database.get_collection(QUEUE_LANES)
        lane = await lanes.find_one({"_id": lane_key(day, shift)})
        return lane.get("serving_token_id") if lane else None

    @classmethod
    async def claim_serving(
        cls,
        day: datetime,
        shift: Shift,
        expected_token_id: Optional[str],
        token_id: Optional[str]
    ) -> None:
        """Move the serving claim of the shift from one token to another.

        Succeeds only if the claim is still held by ``expected_token_id``,
        which is what keeps a single token serving per shift and day.
        """
        lanes = Database.get_collection(QUEUE_LANES)
        key = lane_key(day, shift)

        try:
            await lanes.update_one(
                {"_id": key},
                {"$setOnInsert": {
                    "date": get_clock().start_of_day(day),
                    "shift": Shift(shift).value,
                    "serving_token_id": None,
                    "version": 0
                }},
                upsert=True
            )
        except DuplicateKeyError:
            # Lane created by a concurrent writer
            logger.debug("Lane %s created concurrently", key)

        result = await lanes.find_one_and_update(
            {"_id": key, "serving_token_id": expected_token_id},
            {
                "$set": {"serving_token_id": token_id, "updated_at": get_clock().now()},
                "$inc": {"version": 1}
            },
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise ConcurrencyConflict(
                f"serving claim of {key} is no longer held by {expected_token_id}"
            )
