"""Error types raised by the study core and its store collaborators."""

from __future__ import annotations


class StudyError(Exception):
    """Base class for every error raised by the study core."""


class InvalidArgument(StudyError, ValueError):
    """Raised when a caller breaks an input contract (score range, scope, state)."""


class NotFound(StudyError, LookupError):
    """Raised when a card or deck id does not exist in the store."""


class StoreUnavailable(StudyError):
    """Raised when a store collaborator fails to read or write."""


class ConcurrentModification(StoreUnavailable):
    """Raised when a card changed underneath an update."""
