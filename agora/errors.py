"""
agora.errors — Core Error Kinds
================================

Every failure the gamification core reports to its callers.  All of them
are recoverable; translating them into HTTP responses is the API layer's
job (see :mod:`agora.api.main`).
"""

from __future__ import annotations


class AgoraError(Exception):
    """Base class for errors raised by the gamification core."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(AgoraError):
    """A user or achievement id does not resolve."""


class ValidationError(AgoraError):
    """Negative/overflowing point amounts or malformed enum values."""


class ConflictError(AgoraError):
    """The requested change collides with existing state."""


def parse_enum(enum_cls, value, field: str):
    """Coerce *value* into a member of *enum_cls* or raise ValidationError.

    Used at every entry point that accepts scope/period/metric names from
    callers, so malformed strings fail loudly instead of matching nothing.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field} {value!r}; expected one of: {allowed}"
        ) from None
