from datetime import datetime, timedelta

from queuease.models.queue import QueueToken, Shift, TokenStatus
from queuease.services.ordering import first_with_status, index_of, order_tokens

DAY = datetime(2026, 10, 19)


def make_token(token_id, sequence, emergency=False, status=TokenStatus.PENDING, minute=0):
    return QueueToken(
        _id=token_id,
        patient_id=f"patient-{token_id}",
        shift=Shift.MORNING,
        date=DAY,
        is_emergency=emergency,
        sequence_number=sequence,
        status=status,
        created_at=DAY + timedelta(hours=9, minutes=minute),
    )


def test_emergency_tokens_come_first():
    regular = make_token("r1", 1, minute=0)
    emergency = make_token("e1", 1, emergency=True, minute=5)
    ordered = order_tokens([regular, emergency])
    assert [t.id for t in ordered] == ["e1", "r1"]


def test_emergency_tokens_follow_their_own_sequence():
    ordered = order_tokens([
        make_token("e2", 2, emergency=True, minute=1),
        make_token("e1", 1, emergency=True, minute=2),
    ])
    assert [t.token_number for t in ordered] == ["E-1", "E-2"]


def test_regular_tokens_sort_numerically():
    ordered = order_tokens([make_token(str(n), n, minute=n) for n in (10, 2, 1, 11, 3)])
    assert [t.token_number for t in ordered] == ["1", "2", "3", "10", "11"]


def test_created_at_breaks_ties():
    late = make_token("late", 4, minute=30)
    early = make_token("early", 4, minute=1)
    assert [t.id for t in order_tokens([late, early])] == ["early", "late"]


def test_first_with_status_and_index():
    ordered = order_tokens([
        make_token("a", 1, status=TokenStatus.COMPLETED),
        make_token("b", 2),
        make_token("e", 1, emergency=True, status=TokenStatus.MISSED),
        make_token("c", 3, status=TokenStatus.SERVING),
    ])
    assert first_with_status(ordered, TokenStatus.PENDING).id == "b"
    assert first_with_status(ordered, TokenStatus.PENDING, TokenStatus.SERVING).id == "b"
    assert first_with_status(ordered, TokenStatus.PENDING, emergency=True) is None
    assert index_of(ordered, "c") == 3
    assert index_of(ordered, "missing") == -1
