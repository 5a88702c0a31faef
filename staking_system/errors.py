# staking_system/errors.py
"""
Exception taxonomy of the staking engine.

ValidationError      - bad input or config, raised before any mutation.
GraphIntegrityError  - referral chain is corrupted (cycle or dangling referrer).
ConsistencyError     - a unit of work could not be applied atomically.

Cap truncation is a normal outcome and never raises.
"""
from typing import Iterable, Optional


class EngineError(Exception):
    """Base class for all engine errors."""
    pass


class ValidationError(EngineError, ValueError):
    """Malformed input or configuration. Nothing was written."""
    pass


class NotFoundError(ValidationError):
    """Referenced entity does not exist."""
    pass


class InsufficientBalanceError(ValidationError):
    """Debit exceeds the available balance."""
    pass


class OperationPausedError(ValidationError):
    """Operation is disabled by an admin toggle."""
    pass


class GraphIntegrityError(EngineError):
    """Referral chain contains a cycle or points to a missing referrer."""

    def __init__(self, message: str, userId: Optional[int] = None):
        super().__init__(message)
        self.userId = userId


class ConsistencyError(EngineError):
    """
    Unit of work failed after partially mutating state.
    The caller must roll back and stop mutating the listed participants.
    """

    def __init__(self, message: str, userIds: Iterable[int] = ()):
        super().__init__(message)
        self.userIds = frozenset(u for u in userIds if u is not None)
