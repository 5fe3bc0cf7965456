"""Exceptions raised by the swisscut engine.

Every error the engine raises derives from EngineError so callers can
surface them with a single except clause. ConcurrentModificationError is the
only one a caller is expected to retry.
"""


class EngineError(Exception):
    """Base exception for all engine errors."""

    pass


class ValidationError(EngineError):
    """Raised when input is malformed (bad scores, unknown participant, ...)."""

    pass


class NotFoundError(EngineError):
    """Raised when a phase, match or event id is unknown."""

    pass


class AuthorizationError(EngineError):
    """Raised when a caller is not allowed to perform the action."""

    pass


class ConcurrentModificationError(EngineError):
    """Raised when a record changed between read and conditional write."""

    pass


# ========== State Exceptions ==========


class InvalidStateError(EngineError):
    """Raised when an operation is illegal for the current phase/match status."""

    pass


class RoundIncompleteError(InvalidStateError):
    """Raised when the latest round still has unfinished matches."""

    pass


class RoundLimitReachedError(InvalidStateError):
    """Raised when a Swiss phase already generated all of its rounds."""

    pass


class NoEligiblePairingError(InvalidStateError):
    """Raised when a Swiss round cannot be paired without a rematch."""

    pass


class BracketCompleteError(InvalidStateError):
    """Raised when advancing a bracket past its Final."""

    pass
