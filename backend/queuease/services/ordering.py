"""
Queue ordering policy.

The single source of truth for "who is next": emergency tokens first by
their own emergency sequence, then regular tokens by numeric sequence,
creation time as the final tie-break.
"""

from typing import Iterable, List, Optional

from ..models.queue import QueueToken, TokenStatus


def order_key(token: QueueToken):
    return (not token.is_emergency, token.sequence_number, token.created_at)


def order_tokens(tokens: Iterable[QueueToken]) -> List[QueueToken]:
    """Return the tokens of one shift and day in serving order."""
    return sorted(tokens, key=order_key)


def index_of(ordered: List[QueueToken], token_id: str) -> int:
    for index, token in enumerate(ordered):
        if token.id == token_id:
            return index
    return -1


def first_with_status(
    ordered: Iterable[QueueToken],
    *statuses: TokenStatus,
    emergency: Optional[bool] = None
) -> Optional[QueueToken]:
    """First token in order whose status is one of ``statuses``."""
    for token in ordered:
        if token.status not in statuses:
            continue
        if emergency is not None and token.is_emergency != emergency:
            continue
        return token
    return None
