"""Error taxonomy shared by every provider-mirror component.

Every failure raised by this package is a ``MirrorError`` carrying a
machine-checkable ``ErrorCode``.  Wrapping adds context to the message but
never discards the code of the inner error, so callers at the edge (CLI,
API layer) can map codes to status without parsing strings.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Kinds of failure a caller can branch on."""

    INVALID = "invalid"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INTERNAL = "internal"
    CANCELLED = "cancelled"


class MirrorError(RuntimeError):
    """Raised for every expected failure of a mirror operation.

    Parameters
    ----------
    message:
        Human-readable description.  For ``INTERNAL`` errors this is logged
        but not shown to callers (see ``public_message``).
    code:
        The error kind.  Defaults to ``ErrorCode.INTERNAL``.
    """

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.INTERNAL) -> None:
        super().__init__(message)
        self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def public_message(self) -> str:
        """Message safe to return to a caller."""
        if self.code == ErrorCode.INTERNAL:
            return "An internal error occurred"
        return self.message

    def __repr__(self) -> str:
        return f"MirrorError(code={self.code.value!r}, message={self.message!r})"


def error_code(exc: BaseException) -> ErrorCode:
    """Return the code of *exc*, treating foreign exceptions as internal."""
    if isinstance(exc, MirrorError):
        return exc.code
    return ErrorCode.INTERNAL


def wrap(exc: BaseException, message: str, *, code: ErrorCode | None = None) -> MirrorError:
    """Prefix *exc* with *message* and keep its code unless *code* overrides it.

    The returned error is meant to be raised ``from exc``.
    """
    return MirrorError(f"{message}: {exc}", code=code or error_code(exc))


def invalid(message: str) -> MirrorError:
    return MirrorError(message, code=ErrorCode.INVALID)


def not_found(message: str) -> MirrorError:
    return MirrorError(message, code=ErrorCode.NOT_FOUND)


def forbidden(message: str) -> MirrorError:
    return MirrorError(message, code=ErrorCode.FORBIDDEN)


def conflict(message: str) -> MirrorError:
    return MirrorError(message, code=ErrorCode.CONFLICT)
