"""Selection of constraints still to be tried, grouped by type."""

from __future__ import annotations

from fetrunner.structures import ConstraintData, TtInstance, new_instance


def get_basic_constraints(
    instance0: TtInstance,
    constraint_data: ConstraintData,
    soft: bool,
    cycle_timeout: int,
) -> tuple[list[TtInstance], int]:
    """One instance per constraint type adding that type's disabled constraints.

    Types follow the order of ``constraint_data.constraint_types``; returns the
    instances and the total number of constraints they add.
    """
    cmap = (
        constraint_data.soft_constraint_map
        if soft
        else constraint_data.hard_constraint_map
    )
    instances: list[TtInstance] = []
    total = 0
    for ctype in constraint_data.constraint_types:
        pending = [i for i in cmap.get(ctype, []) if not instance0.constraint_enabled[i]]
        if not pending:
            continue
        total += len(pending)
        instances.append(new_instance(instance0, ctype, pending, cycle_timeout))
    return instances, total