"""
Error taxonomy for the linkage core.

Ambiguous resolutions are not errors: resolvers flag them in the entity's
attributes (``continuity``, ``link_strategy``, ``fallback_used``) instead.
"""

from __future__ import annotations


class LinkageError(Exception):
    """Base class for linkage errors."""


class TransientIOError(LinkageError):
    """A chat platform or AI provider call failed or timed out."""

    def __init__(self, message: str, code: str = "TRANSIENT_IO") -> None:
        super().__init__(message)
        self.code = code


class ConstraintViolationError(LinkageError):
    """An insert or update would break an ownership or uniqueness invariant."""


class NotFoundError(LinkageError):
    """A referenced entity could not be found."""


class BackfillValidationError(ConstraintViolationError):
    """The final backfill validation pass found invariant violations."""

    def __init__(self, violations: list[str]) -> None:
        super().__init__(
            f"Backfill aborted, {len(violations)} invariant violation(s): "
            + "; ".join(violations[:10])
        )
        self.violations = violations
