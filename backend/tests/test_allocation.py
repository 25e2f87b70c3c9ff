import asyncio

import pytest

from queuease.errors import (
    CapacityExceededError,
    DuplicateEmergencyError,
    DuplicateTokenError,
    MissedTokenError,
    TransientFailure,
)
from queuease.models.events import EventType
from queuease.models.queue import Shift, TokenStatus
from queuease.services.allocation_service import AllocationService
from queuease.services.config_service import QueueConfigService
from queuease.services.ledger import TokenLedger
from queuease.services.lifecycle_service import LifecycleService


async def test_first_token_is_promoted_to_serving(db, events):
    result = await AllocationService.issue_token("alice", Shift.MORNING)

    assert result.token.token_number == "1"
    assert result.token.status == TokenStatus.SERVING
    assert result.promoted.id == result.token.id

    config = await QueueConfigService.get_config()
    assert config.current_token_id == result.token.id
    assert [e.type for e in events] == [
        EventType.TOKEN_ISSUED,
        EventType.QUEUE_ADVANCED,
        EventType.QUEUE_SNAPSHOT_CHANGED,
    ]
    assert events[-1].payload["current_serving"] == {"token_number": "1", "is_emergency": False}
    assert events[-1].payload["total_tokens"] == 1


async def test_second_token_waits(db, events):
    await AllocationService.issue_token("alice", Shift.MORNING)
    events.clear()

    result = await AllocationService.issue_token("bob", Shift.MORNING)

    assert result.token.token_number == "2"
    assert result.token.status == TokenStatus.PENDING
    assert result.promoted is None
    assert [e.type for e in events] == [EventType.TOKEN_ISSUED, EventType.QUEUE_SNAPSHOT_CHANGED]
    snapshot = events[-1].payload
    assert snapshot["shift"] == "morning"
    assert snapshot["total_tokens"] == 2
    assert snapshot["current_serving"] == {"token_number": "1", "is_emergency": False}


async def test_emergency_tokens_are_numbered_separately(db):
    await AllocationService.issue_token("alice", Shift.MORNING)
    first = await AllocationService.issue_token("bob", Shift.MORNING, is_emergency=True)
    second = await AllocationService.issue_token("carol", Shift.MORNING, is_emergency=True)
    regular = await AllocationService.issue_token("dave", Shift.MORNING)

    assert first.token.token_number == "E-1"
    assert second.token.token_number == "E-2"
    assert regular.token.token_number == "2"


async def test_shifts_are_numbered_independently(db):
    morning = await AllocationService.issue_token("alice", Shift.MORNING)
    evening = await AllocationService.issue_token("bob", Shift.EVENING)

    assert morning.token.sequence_number == 1
    assert evening.token.sequence_number == 1
    assert evening.token.status == TokenStatus.SERVING


async def test_duplicate_token_rejected(db):
    await AllocationService.issue_token("alice", Shift.MORNING)

    with pytest.raises(DuplicateTokenError, match="already have a token"):
        await AllocationService.issue_token("alice", Shift.MORNING)
    with pytest.raises(DuplicateTokenError):
        await AllocationService.issue_token("alice", Shift.MORNING, is_emergency=True)


async def test_same_patient_may_hold_both_shifts(db):
    await AllocationService.issue_token("alice", Shift.MORNING)
    result = await AllocationService.issue_token("alice", Shift.EVENING)
    assert result.token.shift == Shift.EVENING


async def test_missed_token_blocks_reissue(db, clock):
    await AllocationService.issue_token("alice", Shift.MORNING)
    await AllocationService.issue_token("bob", Shift.MORNING)
    clock.advance(minutes=5)
    carol = await AllocationService.issue_token("carol", Shift.MORNING)
    clock.advance(minutes=5)

    # Serving carol out of turn skips bob
    result = await LifecycleService.complete_current(carol.token.id)
    assert [t.patient_id for t in result.missed_tokens] == ["bob"]

    with pytest.raises(MissedTokenError, match="missed your token"):
        await AllocationService.issue_token("bob", Shift.MORNING)


async def test_one_emergency_token_per_day(db):
    await AllocationService.issue_token("alice", Shift.MORNING, is_emergency=True)

    with pytest.raises(DuplicateEmergencyError, match="emergency token today"):
        await AllocationService.issue_token("alice", Shift.EVENING, is_emergency=True)

    regular = await AllocationService.issue_token("alice", Shift.EVENING)
    assert regular.token.is_emergency is False


async def test_capacity_limit_and_raise(db):
    await QueueConfigService.set_capacity(Shift.MORNING, 2)
    await AllocationService.issue_token("alice", Shift.MORNING)
    await AllocationService.issue_token("bob", Shift.MORNING)

    with pytest.raises(CapacityExceededError) as excinfo:
        await AllocationService.issue_token("carol", Shift.MORNING)
    assert excinfo.value.capacity == 2
    assert "Maximum tokens (2) for morning shift reached" in str(excinfo.value)

    await QueueConfigService.set_capacity(Shift.MORNING, 3)
    result = await AllocationService.issue_token("carol", Shift.MORNING)
    assert result.token.sequence_number == 3


async def test_emergency_tokens_ignore_capacity(db):
    await QueueConfigService.set_capacity(Shift.MORNING, 1)
    await AllocationService.issue_token("alice", Shift.MORNING)

    result = await AllocationService.issue_token("bob", Shift.MORNING, is_emergency=True)
    assert result.token.token_number == "E-1"


async def test_lowering_capacity_keeps_issued_tokens(db):
    for patient in ("alice", "bob", "carol"):
        await AllocationService.issue_token(patient, Shift.MORNING)

    await QueueConfigService.set_capacity(Shift.MORNING, 1)

    tokens = await TokenLedger.find_for_day(shift=Shift.MORNING)
    assert sorted(t.sequence_number for t in tokens) == [1, 2, 3]
    with pytest.raises(CapacityExceededError):
        await AllocationService.issue_token("dave", Shift.MORNING)


async def test_pause_does_not_block_issuance(db):
    config = await QueueConfigService.toggle_pause()
    assert config.is_paused is True

    result = await AllocationService.issue_token("alice", Shift.MORNING)
    assert result.token.status == TokenStatus.SERVING


async def test_stale_sequence_read_is_retried(db, monkeypatch):
    await AllocationService.issue_token("alice", Shift.MORNING)

    original = TokenLedger.max_sequence.__func__
    calls = []

    async def stale_once(cls, day, shift, is_emergency):
        calls.append(shift)
        if len(calls) == 1:
            return 0
        return await original(cls, day, shift, is_emergency)

    monkeypatch.setattr(TokenLedger, "max_sequence", classmethod(stale_once))

    result = await AllocationService.issue_token("bob", Shift.MORNING)
    assert result.token.sequence_number == 2
    assert len(calls) == 2


async def test_exhausted_retries_surface_as_transient(db, monkeypatch):
    await AllocationService.issue_token("alice", Shift.MORNING)
    await QueueConfigService.set_capacity(Shift.MORNING, 2)

    async def always_stale(cls, day, shift, is_emergency):
        return 0

    monkeypatch.setattr(TokenLedger, "max_sequence", classmethod(always_stale))

    with pytest.raises(TransientFailure):
        await AllocationService.issue_token("bob", Shift.MORNING)

    tokens = await TokenLedger.find_for_day(shift=Shift.MORNING)
    assert [t.patient_id for t in tokens] == ["alice"]


async def serving_tokens(shift=Shift.MORNING):
    tokens = await TokenLedger.find_for_day(shift=shift)
    return [t for t in tokens if t.status == TokenStatus.SERVING]


async def test_concurrent_issuance_is_dense(db, interleaved):
    patients = [f"patient-{n}" for n in range(20)]
    results = await asyncio.gather(*[
        AllocationService.issue_token(patient, Shift.MORNING) for patient in patients
    ])

    numbers = sorted(r.token.sequence_number for r in results)
    assert numbers == list(range(1, 21))
    assert sum(1 for r in results if r.promoted is not None) == 1

    serving = await serving_tokens()
    assert len(serving) == 1
    config = await QueueConfigService.get_config()
    assert config.current_token_id == serving[0].id


async def test_concurrent_issuance_stops_at_capacity(db, interleaved):
    await QueueConfigService.set_capacity(Shift.MORNING, 12)

    results = await asyncio.gather(*[
        AllocationService.issue_token(f"patient-{n}", Shift.MORNING) for n in range(20)
    ], return_exceptions=True)

    issued = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert sorted(r.token.sequence_number for r in issued) == list(range(1, 13))
    assert len(refused) == 8
    assert all(isinstance(r, CapacityExceededError) for r in refused)


async def test_concurrent_emergencies_for_one_patient(db, interleaved):
    results = await asyncio.gather(
        AllocationService.issue_token("alice", Shift.MORNING, is_emergency=True),
        AllocationService.issue_token("alice", Shift.MORNING, is_emergency=True),
        AllocationService.issue_token("alice", Shift.EVENING, is_emergency=True),
        AllocationService.issue_token("alice", Shift.EVENING, is_emergency=True),
        return_exceptions=True
    )

    issued = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(issued) == 1
    assert len(refused) == 3
    assert all(
        isinstance(r, (DuplicateTokenError, DuplicateEmergencyError)) for r in refused
    )

    tokens = await TokenLedger.find_for_day(patient_id="alice")
    assert [t.token_number for t in tokens] == ["E-1"]


async def test_completion_races_with_issuance(db, interleaved):
    alice = await AllocationService.issue_token("alice", Shift.MORNING)
    bob = await AllocationService.issue_token("bob", Shift.MORNING)

    await asyncio.gather(
        LifecycleService.complete_current(alice.token.id),
        *[AllocationService.issue_token(f"patient-{n}", Shift.MORNING) for n in range(5)]
    )

    serving = await serving_tokens()
    assert [t.id for t in serving] == [bob.token.id]
    config = await QueueConfigService.get_config()
    assert config.current_token_id == bob.token.id
