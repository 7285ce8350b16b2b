"""
Error taxonomy for the orchestration engine.

Every terminal failure carries a machine-readable ``ErrorKind`` and a
human-readable message.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT = 'transient'
    REJECTED = 'rejected'
    INVALID_RESPONSE = 'invalid_response'
    TIMEOUT = 'timeout'
    EXPIRED = 'expired'
    REFERENTIAL_INTEGRITY = 'referential_integrity'
    COMPONENT_FAILURE = 'component_failure'


# Kinds the analysis client absorbs with its retry loop.
RETRYABLE_KINDS = frozenset({
    ErrorKind.TRANSIENT,
    ErrorKind.TIMEOUT,
    ErrorKind.INVALID_RESPONSE,
})


class CodecoachError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind | None = None

    def __init__(self, message: str = '', kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value if self.kind else None,
            'message': self.message,
        }


class AnalysisError(CodecoachError):
    """A failed analysis attempt or a rejected analysis request."""

    def __init__(self, kind: ErrorKind, message: str = ''):
        super().__init__(message or kind.value, kind=kind)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f'AnalysisError(kind={self.kind.value!r}, message={self.message!r})'


class AnalysisDeferred(AnalysisError):
    """Retry budget exhausted; the request was handed to the deferred queue.

    ``kind`` is the kind of the last failed attempt.
    """

    def __init__(self, kind: ErrorKind, message: str = '', attempts: int = 0):
        super().__init__(kind, message)
        self.attempts = attempts


class ReferentialIntegrityError(CodecoachError):
    """A write or request references an entity that does not exist."""

    kind = ErrorKind.REFERENTIAL_INTEGRITY


class NonMonotonicSnapshotError(CodecoachError):
    """A growth snapshot would break the strictly increasing week order."""


class InvalidTransition(CodecoachError):
    """The orchestrator was asked to take a transition the state machine forbids."""


class LeaseUnavailable(CodecoachError):
    """Another worker holds an unexpired lease on the submission."""
