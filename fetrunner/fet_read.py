"""Reading FET files and rebuilding them with selected constraints enabled."""

from __future__ import annotations

import copy
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Sequence

from fetrunner.constraint_order import sort_constraint_types
from fetrunner.log import logger
from fetrunner.structures import ConstraintData, Resource, ResourceType

_BASIC_TIME = "ConstraintBasicCompulsoryTime"
_BASIC_SPACE = "ConstraintBasicCompulsorySpace"


def _child(element: ET.Element, tag: str) -> ET.Element:
    found = element.find(tag)
    if found is None:
        raise ValueError(f"<{element.tag}> has no <{tag}> element")
    return found


def _strip_whitespace(element: ET.Element) -> None:
    if element.text is not None and not element.text.strip():
        element.text = None
    for child in element:
        _strip_whitespace(child)
        if child.tail is not None and not child.tail.strip():
            child.tail = None


@dataclass
class FetDoc:
    """A parsed FET document with its constraint elements, time ones first."""

    tree: ET.ElementTree
    constraints: list[ET.Element] = field(default_factory=list)
    n_time_constraints: int = 0
    necessary: list[int] = field(default_factory=list)

    def constraint_string(self, index: int) -> str:
        """The XML of a single constraint, without indentation."""
        element = copy.deepcopy(self.constraints[index])
        _strip_whitespace(element)
        element.tail = None
        return ET.tostring(element, encoding="unicode")

    def compose(self, enabled: Sequence[bool]) -> bytes:
        """Set each constraint's Active flag from ``enabled`` and return the XML."""
        if len(enabled) != len(self.constraints):
            raise ValueError(
                f"expected {len(self.constraints)} flags, got {len(enabled)}"
            )
        for element, flag in zip(self.constraints, enabled):
            _child(element, "Active").text = "true" if flag else "false"
        return ET.tostring(
            self.tree.getroot(), encoding="utf-8", xml_declaration=True
        )

    def write(self, path: str) -> None:
        """Save the document as it currently stands."""
        self.tree.write(path, encoding="utf-8", xml_declaration=True)


def get_resources(root: ET.Element) -> list[Resource]:
    """The real (non-virtual) rooms of the document."""
    rooms = root.find("Rooms_List")
    if rooms is None:
        return []
    real = (e for e in rooms if e.findtext("Virtual") == "false")
    return [
        Resource(type=ResourceType.ROOM, index=i, tag=_child(e, "Name").text or "")
        for i, e in enumerate(real)
    ]


def read_fet(path: str) -> ConstraintData:
    """Read a FET file, classifying its constraints as hard or soft by type."""
    tree = ET.parse(path)
    root = tree.getroot()
    logger.debug("ROOT element: %s %s", root.tag, root.attrib)

    n_activities = len(_child(root, "Activities_List"))

    constraints: list[ET.Element] = []
    necessary: list[int] = []
    hard: dict[str, list[int]] = {}
    soft: dict[str, list[int]] = {}
    types: list[str] = []
    n_time = 0

    for list_tag, basic in (
        ("Time_Constraints_List", _BASIC_TIME),
        ("Space_Constraints_List", _BASIC_SPACE),
    ):
        for element in _child(root, list_tag):
            index = len(constraints)
            constraints.append(element)
            ctype = element.tag
            weight = _child(element, "Weight_Percentage").text or ""
            logger.debug("%02d: %s (%s)", index, ctype, weight)
            if ctype == basic:
                necessary.append(index)
                continue
            types.append(ctype)
            target = hard if weight.strip() == "100" else soft
            target.setdefault(ctype, []).append(index)
        if list_tag == "Time_Constraints_List":
            n_time = len(constraints)

    fetdoc = FetDoc(
        tree=tree,
        constraints=constraints,
        n_time_constraints=n_time,
        necessary=necessary,
    )
    return ConstraintData(
        n_activities=n_activities,
        n_constraints=len(constraints),
        constraint_types=sort_constraint_types(types),
        hard_constraint_map=hard,
        soft_constraint_map=soft,
        resources=get_resources(root),
        input_data=fetdoc,
    )