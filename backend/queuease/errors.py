"""
Queue engine error taxonomy.

Every error carries the HTTP status the API reports it with and a message
naming the rule that was violated.
"""

from fastapi import status


class QueueError(Exception):
    """Base class for queue engine errors."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateTokenError(QueueError):
    """Patient already holds a token for this shift today."""


class MissedTokenError(DuplicateTokenError):
    """Patient's token for this shift was missed; no reissue."""


class DuplicateEmergencyError(QueueError):
    """Patient already holds an emergency token today."""


class CapacityExceededError(QueueError):
    """Regular tokens for the shift reached the configured capacity."""

    def __init__(self, shift: str, capacity: int):
        super().__init__(f"Maximum tokens ({capacity}) for {shift} shift reached")
        self.shift = shift
        self.capacity = capacity


class InvalidCapacityError(QueueError):
    def __init__(self, shift: str, value: int):
        super().__init__(f"Max tokens for {shift} shift must be at least 1 (got {value})")
        self.shift = shift
        self.value = value


class NotFoundError(QueueError):
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyCompletedError(QueueError):
    pass


class InvalidTransitionError(QueueError):
    """Token cannot move from its current status."""


class ConcurrencyConflict(Exception):
    """A compare-and-set write lost against a concurrent writer.

    Internal: retried by the services and never shown to callers.
    """


class TransientFailure(QueueError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
