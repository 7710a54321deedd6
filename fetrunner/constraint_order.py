"""Ordering of constraint types by priority."""

from __future__ import annotations

from collections.abc import Iterable
from itertools import product

# Blocked-slot constraints come first, in this order.
_LEADING = (
    "ConstraintRoomNotAvailableTimes",
    "ConstraintStudentsSetNotAvailableTimes",
    "ConstraintTeacherNotAvailableTimes",
)

# Gap constraints come last, in this order.
_TRAILING = tuple(
    f"Constraint{who}MaxGapsPer{period}"
    for who, period in product(
        ("Teachers", "Teacher", "Students", "StudentsSet"), ("Day", "Week")
    )
)

# Relative priority of constraint types; unlisted types have priority 0.
CONSTRAINT_PRIORITY: dict[str, int] = {
    **{name: 100 - rank for rank, name in enumerate(_LEADING)},
    **{name: -93 - rank for rank, name in enumerate(_TRAILING)},
}


def sort_constraint_types(constraint_types: Iterable[str]) -> list[str]:
    """Deduplicate and order types: highest priority first, then by name."""
    return sorted(
        set(constraint_types),
        key=lambda name: (-CONSTRAINT_PRIORITY.get(name, 0), name),
    )