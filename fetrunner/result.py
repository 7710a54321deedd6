"""The result of a successful instance: placements plus the constraints left out."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fetrunner.log import logger
from fetrunner.structures import ActivityPlacement, RunContext, TtInstance


@dataclass
class Result:
    time: int
    placements: list[ActivityPlacement] = field(default_factory=list)
    unfulfilled_hard_constraints: dict[str, list[int]] = field(default_factory=dict)
    total_hard_constraints: int = 0
    unfulfilled_soft_constraints: dict[str, list[int]] = field(default_factory=dict)
    total_soft_constraints: int = 0

    def to_dict(self) -> dict[str, Any]:
        """A JSON-ready mapping using the saved file's key names."""
        return {
            "Time": self.time,
            "Placements": [
                {"Id": p.id, "Day": p.day, "Hour": p.hour, "Rooms": list(p.rooms)}
                for p in self.placements
            ],
            "UnfulfilledHardConstraints": {
                k: list(v) for k, v in sorted(self.unfulfilled_hard_constraints.items())
            },
            "TotalHardConstraints": self.total_hard_constraints,
            "UnfulfilledSoftConstraints": {
                k: list(v) for k, v in sorted(self.unfulfilled_soft_constraints.items())
            },
            "TotalSoftConstraints": self.total_soft_constraints,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _unfulfilled(
    cmap: dict[str, list[int]], enabled: list[bool]
) -> tuple[dict[str, list[int]], int]:
    disabled = {ctype: [i for i in clist if not enabled[i]] for ctype, clist in cmap.items()}
    return disabled, sum(len(clist) for clist in cmap.values())


def save_result(result: Result, path: str | os.PathLike[str]) -> None:
    """Write the result as indented JSON."""
    Path(path).write_text(result.to_json(), encoding="utf-8")


def build_result(context: RunContext, instance: TtInstance) -> Result:
    """Make ``instance`` the latest result; in debug mode also save it as JSON."""
    logger.info("+++ %s @ %d", instance.tag, instance.ticks)
    placements = context.backend.results(instance)
    data = context.constraint_data
    hard, n_hard = _unfulfilled(data.hard_constraint_map, instance.constraint_enabled)
    soft, n_soft = _unfulfilled(data.soft_constraint_map, instance.constraint_enabled)
    result = Result(
        time=instance.ticks,
        placements=list(placements),
        unfulfilled_hard_constraints=hard,
        total_hard_constraints=n_hard,
        unfulfilled_soft_constraints=soft,
        total_soft_constraints=n_soft,
    )
    context.last_result = result
    if context.settings.debug:
        save_result(result, os.path.join(context.working_dir, instance.tag + ".json"))
    return result