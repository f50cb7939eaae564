"""Exceptions raised by the schedule engine and its collaborators."""

from __future__ import annotations

from typing import Optional, Sequence


class ValidationError(ValueError):
    """A debt contract failed its preconditions.

    ``field`` names the offending contract field and ``tier_indices`` the
    0-based positions of the step-up tiers involved, so a form can highlight
    them before anything is saved.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        tier_indices: Sequence[int] = (),
    ) -> None:
        super().__init__(message)
        self.field = field
        self.tier_indices = tuple(tier_indices)


class ScheduleIntegrityError(ValueError):
    """A generated schedule is not a contiguous 1..N run for a single debt."""


class StatusTransitionError(ValueError):
    """An installment status change that is not allowed."""


class StaleScheduleError(RuntimeError):
    """The stored schedule changed since the caller last read it."""

    def __init__(self, debt_id: str, expected_version: int, current_version: int) -> None:
        super().__init__(
            f"Schedule for debt {debt_id} is at version {current_version}, "
            f"expected {expected_version}"
        )
        self.debt_id = debt_id
        self.expected_version = expected_version
        self.current_version = current_version
