from __future__ import annotations


class NotFoundError(LookupError):
    """Raised when a tracking number or lead id does not match a stored record."""


class InvalidTransitionError(ValueError):
    """Raised when a lead is moved out of, or converted after reaching, the converted state."""


class AllocationExhaustedError(RuntimeError):
    """Raised when no unused tracking number was found within the attempt budget."""


class InvalidPageError(ValueError):
    """Raised when a list query asks for a page or page size below 1."""
