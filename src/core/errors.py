"""
Error taxonomy for the analytics engine.

Every failure the engine raises derives from LearnLoopError so the API layer
can map it to a status code in one place:

- ValidationError: malformed Event/Outcome, rejected before anything is applied
- NotFoundError: unknown user or recommendation
- InsufficientDataError: detection declines to guess; callers turn it into an empty result
- CollaboratorUnavailableError: narrative service failure, recovered locally
- PersistenceError: storage failure, fatal for the affected user's job only
"""

from __future__ import annotations


class LearnLoopError(Exception):
    """Base class for all engine errors."""


class ValidationError(LearnLoopError):
    """Raised when an Event or Outcome violates its schema."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class OutOfOrderEventError(ValidationError):
    """Raised when an event is older than the user's last applied event."""


class NotFoundError(LearnLoopError):
    """Raised when a user or recommendation does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InsufficientDataError(LearnLoopError):
    """Raised when there is not enough evidence to produce an output."""


class CollaboratorUnavailableError(LearnLoopError):
    """Raised when the narrative-insight service cannot be used."""


class InsightTimeoutError(CollaboratorUnavailableError):
    """The narrative-insight service did not answer in time."""


class MalformedInsightResponseError(CollaboratorUnavailableError):
    """The narrative-insight service answered with something unusable."""


class PersistenceError(LearnLoopError):
    """Raised when the key-value store cannot read or write a snapshot."""
