"""Data structures shared by the timetable generation driver and its back-end."""

from __future__ import annotations

import abc
import itertools
import os
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

# Processing states of a `TtInstance`, managed by the run queue and driver.
QUEUED = -1
RUNNING = 0
SUCCEEDED = 1
FAILED = 2
CANCELLED = 3

# Run states of a `TtInstance`, set by the back-end.
RUN_ACTIVE = 0
RUN_OK = 1
RUN_FAILED = 2

_instance_counter = itertools.count()


class ResourceType(IntEnum):
    TEACHER = 0
    GROUP = 1
    ROOM = 2


@dataclass
class Resource:
    type: ResourceType
    index: int  # within the type
    tag: str  # short unique identifier


@dataclass
class ActivityPlacement:
    """Placement of one activity as returned by the back-end."""

    id: int
    day: int
    hour: int
    rooms: list[int] = field(default_factory=list)


@dataclass
class ConstraintData:
    """The source data as seen by the driver; `input_data` belongs to the reader."""

    n_activities: int = 0
    n_constraints: int = 0
    constraint_types: list[str] = field(default_factory=list)
    hard_constraint_map: dict[str, list[int]] = field(default_factory=dict)
    soft_constraint_map: dict[str, list[int]] = field(default_factory=dict)
    resources: list[Resource] = field(default_factory=list)
    input_data: Any = None


@dataclass(eq=False)
class TtInstance:
    """One generation run with a particular set of enabled constraints."""

    tag: str
    timeout: int = 0  # ticks, 0 = none
    constraint_enabled: list[bool] = field(default_factory=list)
    base_instance: Optional["TtInstance"] = None
    constraint_type: str = ""
    constraints: list[int] = field(default_factory=list)

    ticks: int = 0
    stopped: bool = False
    processing_state: int = QUEUED

    # Set by the back-end:
    backend_data: Any = None
    instance_dir: str = ""
    run_state: int = RUN_ACTIVE
    progress: int = 0  # percent
    last_time: int = 0  # instance ticks at the last progress change
    message: str = ""


class Backend(abc.ABC):
    """Interface of a timetable generator back-end."""

    @abc.abstractmethod
    def run(self, instance: TtInstance, testing: bool) -> None:
        """Start generation for the instance."""

    @abc.abstractmethod
    def abort(self, instance: TtInstance) -> None:
        """Stop a running instance."""

    @abc.abstractmethod
    def tick(self, instance: TtInstance) -> None:
        """Update progress and run state of the instance."""

    @abc.abstractmethod
    def clear(self, instance: TtInstance) -> None:
        """Remove the working files of a finished instance."""

    @abc.abstractmethod
    def tidy(self, working_dir: str) -> None:
        """Remove all remaining temporary files."""

    @abc.abstractmethod
    def results(self, instance: TtInstance) -> list[ActivityPlacement]:
        """Read the placements produced by a successful instance."""


def default_max_processes() -> int:
    """Number of parallel runs: the processor count, kept between 4 and 6."""
    return min(max(os.cpu_count() or 1, 4), 6)


@dataclass
class Settings:
    testing: bool = False
    max_processes: int = field(default_factory=default_max_processes)
    new_base_timeout_factor: int = 15  # factor * 10
    stage_timeout_min: int = 5
    new_stage_timeout_factor: int = 15  # factor * 10
    last_time_0: int = 5
    last_time_1: int = 50
    debug: bool = False


@dataclass
class RunContext:
    """State shared by the components of one generation run."""

    constraint_data: ConstraintData
    backend: Backend
    working_dir: str
    settings: Settings = field(default_factory=Settings)
    ticks: int = 0
    cycle_timeout: int = 0
    last_result: Any = None


def new_instance(
    base: TtInstance,
    constraint_type: str,
    constraint_indexes: list[int],
    timeout: int,
) -> TtInstance:
    """Derive an instance from ``base`` with the given constraints also enabled."""
    enabled = list(base.constraint_enabled)
    for index in constraint_indexes:
        enabled[index] = True
    return TtInstance(
        tag=f"z{next(_instance_counter):05d}~{constraint_type}",
        timeout=timeout,
        constraint_enabled=enabled,
        base_instance=base,
        constraint_type=constraint_type,
        constraints=list(constraint_indexes),
    )