# storefront_search/models/result.py

"""Tagged success/failure results passed between pipeline stages.

Upstream and processing failures never escape the core as raw
exceptions.  They are translated into a :class:`Failure` carrying an
:class:`ErrorKind` plus the context needed to classify them at the
boundary (status mapping, retry hints).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Domain-level failure categories."""

    INVALID_REQUEST = "invalid_request"
    REGION_UNSUPPORTED = "region_unsupported"
    REGION_UNAVAILABLE = "region_unavailable"
    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    EXTRACTION_FAILED = "extraction_failed"
    MATCH_FAILED = "match_failed"


_RETRYABLE: frozenset[ErrorKind] = frozenset({
    ErrorKind.REGION_UNAVAILABLE,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
    ErrorKind.RATE_LIMITED,
    ErrorKind.UPSTREAM_ERROR,
    ErrorKind.BLOCKED,
})


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome wrapping a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed outcome with its kind and structured context."""

    kind: ErrorKind
    message: str
    context: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
    timestamp: str = field(default_factory=_utcnow)

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        """Whether the caller may reasonably try again later."""
        return self.kind in _RETRYABLE

    def with_context(self, **extra: Any) -> "Failure":
        """Return a copy with *extra* merged into the context."""
        return Failure(
            kind=self.kind,
            message=self.message,
            context={**self.context, **extra},
            timestamp=self.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the boundary layer."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "context": {
                k: str(v) if isinstance(v, BaseException) else v
                for k, v in self.context.items()
            },
            "retryable": self.retryable,
            "timestamp": self.timestamp,
        }


Result = Ok[T] | Failure
