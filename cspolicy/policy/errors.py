"""Error types raised by the CSP policy engine."""

from __future__ import annotations


class InvalidArgumentError(ValueError):
    """A required argument was None, empty or otherwise unusable."""


class CspMisconfigurationError(RuntimeError):
    """A request needs a policy that was never registered.

    Emitting a response without its CSP header is a security regression,
    so this error is always propagated to the caller.
    """


def require_name(value: str | None, what: str) -> str:
    """Return *value* if it is a non-empty string, otherwise raise."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{what} must be a non-empty string")
    return value
