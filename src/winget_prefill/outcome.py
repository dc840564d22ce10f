"""Per-field lookup results and the failure taxonomy of the pre-fill pipeline.

Every remote lookup (a registry manifest file, a detected repository field)
runs in its own task and finishes with an ``Outcome``: a value, nothing, or
a classified failure. Failures stay inspectable until the resolver collapses
them into "absent", so a missing license can be told apart from a rate limit
when reading the logs.

Only ``DetectionHostError`` is fatal. Everything else is caught at the task
boundary by ``capture``.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

import httpx
import yaml

from winget_prefill.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class ErrorKind(StrEnum):
    """Why a field could not be resolved.

    NOT_FOUND: File, directory, release or asset does not exist
    PARSE_ERROR: Content exists but is malformed
    TRANSIENT: Network/API failure, including timeouts
    """

    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    TRANSIENT = "TRANSIENT"


class LookupFailure(Exception):
    """Base class for non-fatal remote lookup failures."""

    kind: ErrorKind = ErrorKind.TRANSIENT


class NotFoundError(LookupFailure):
    """The requested remote resource does not exist."""

    kind = ErrorKind.NOT_FOUND


class TransientFetchError(LookupFailure):
    """The remote API failed in a way that may succeed on retry."""

    kind = ErrorKind.TRANSIENT


class ManifestParseError(LookupFailure):
    """A manifest file could not be decoded or validated."""

    kind = ErrorKind.PARSE_ERROR


class DetectionHostError(ValueError):
    """Raised when a detection source is built from a URL on a foreign host."""


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """The settled result of one lookup task.

    Attributes:
        value: The resolved value, or None
        error: Failure classification, None when the lookup completed
        detail: Human-readable failure detail for logs
    """

    value: T | None = None
    error: ErrorKind | None = None
    detail: str = ""

    @classmethod
    def found(cls, value: T | None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def absent(cls) -> Outcome[T]:
        """The lookup completed but the field does not apply."""
        return cls()

    @classmethod
    def failed(cls, error: ErrorKind, detail: str = "") -> Outcome[T]:
        return cls(error=error, detail=detail)

    @property
    def ok(self) -> bool:
        return self.error is None


def classify(exc: BaseException) -> ErrorKind | None:
    """Map an exception raised inside a lookup task to an ErrorKind.

    Returns None for exceptions that are programming errors and must
    propagate.
    """
    if isinstance(exc, LookupFailure):
        return exc.kind
    if isinstance(exc, (TimeoutError, httpx.HTTPError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (yaml.YAMLError, KeyError, ValueError)):
        return ErrorKind.PARSE_ERROR
    return None


async def capture(field: str, work: Awaitable[T | None]) -> Outcome[T]:
    """Run one lookup and convert its failure into an Outcome.

    Args:
        field: Name used in log events
        work: The awaitable performing the lookup

    Returns:
        Outcome.found for a value, Outcome.absent for None, or
        Outcome.failed for a classified failure
    """
    try:
        value = await work
    except Exception as exc:
        kind = classify(exc)
        if kind is None:
            raise
        logger.debug("lookup_failed", field=field, error_kind=kind.value, error=str(exc))
        return Outcome.failed(kind, str(exc))

    if value is None:
        return Outcome.absent()
    return Outcome.found(value)
