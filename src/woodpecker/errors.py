"""Typed failures raised by the training engine.

Every error is a ``ValueError`` subclass so callers that only care about
"bad request vs. server fault" can catch the base class.
"""

from __future__ import annotations


class TrainingError(ValueError):
    """Base class for all training engine failures."""


class InsufficientCandidates(TrainingError):
    """The catalog cannot satisfy a puzzle set request."""

    def __init__(self, found: int, requested: int, detail: str = "") -> None:
        self.found = found
        self.requested = requested
        msg = f"Found {found} puzzles but {requested} requested"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class InvalidCycleState(TrainingError):
    """Out-of-order, duplicate or misrouted attempt, or a cycle in the wrong state."""


class NoActiveCycle(TrainingError):
    """The referenced cycle does not exist."""


class SetNotFound(TrainingError):
    """The referenced puzzle set does not exist."""


class UserNotFound(TrainingError):
    """The referenced user does not exist."""
