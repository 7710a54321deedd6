"""Back-end running the ``fet-cl`` command-line generator."""

from __future__ import annotations

import contextlib
import os
import re
import shutil
import subprocess
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Mapping, Optional

from fetrunner import log
from fetrunner.fet_read import FetDoc
from fetrunner.log import logger
from fetrunner.structures import (
    RUN_FAILED,
    RUN_OK,
    ActivityPlacement,
    Backend,
    ConstraintData,
    ResourceType,
    TtInstance,
)

_PROGRESS = re.compile(r"time (.*), FET reached ([0-9]+)")

_OUTPUT_OPTIONS = (
    "--writetimetablesstatistics=false",
    "--writetimetablesdayshorizontal=false",
    "--writetimetablesdaysvertical=false",
    "--writetimetablestimehorizontal=false",
    "--writetimetablestimevertical=false",
    "--writetimetablessubgroups=false",
    "--writetimetablesgroups=false",
    "--writetimetablesyears=false",
    "--writetimetablesteachers=false",
    "--writetimetablesteachersfreeperiods=false",
    "--writetimetablesbuildings=false",
    "--writetimetablesrooms=false",
    "--writetimetablessubjects=false",
)

_TESTING_SEEDS = (
    "--randomseeds10=10",
    "--randomseeds11=11",
    "--randomseeds12=12",
    "--randomseeds20=20",
    "--randomseeds21=21",
    "--randomseeds22=22",
)


@dataclass
class _FetRunData:
    fet_file: str
    fet_xml: bytes
    working_dir: str
    out_dir: str
    log_file: str
    process: Optional[subprocess.Popen] = None
    log: Optional[IO[str]] = None
    pending: str = ""

    @property
    def finished(self) -> bool:
        return self.process is None or self.process.poll() is not None

    def close(self) -> None:
        if self.log is not None:
            self.log.close()
            self.log = None


def _int_child(element: ET.Element, tag: str) -> int:
    text = (element.findtext(tag) or "").strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        raise ET.ParseError(f"<{tag}> is not an integer: {text!r}") from None


def parse_activities_xml(
    xml_bytes: bytes, room_index: Mapping[str, int]
) -> list[ActivityPlacement]:
    """Read the placements from an ``*_activities.xml`` timetable file."""
    root = ET.fromstring(xml_bytes)
    if root.tag != "Activities_Timetable":
        raise ET.ParseError(
            f"expected element <Activities_Timetable>, found <{root.tag}>"
        )
    placements = []
    for activity in root.iter("Activity"):
        real_rooms = [e.text or "" for e in activity.findall("Real_Room")]
        if not real_rooms:
            room = activity.findtext("Room") or ""
            real_rooms = [room] if room else []
        rooms = []
        for name in real_rooms:
            if name not in room_index:
                raise ValueError(f"Unknown room: {name}")
            rooms.append(room_index[name])
        placements.append(
            ActivityPlacement(
                id=_int_child(activity, "Id"),
                day=_int_child(activity, "Day"),
                hour=_int_child(activity, "Hour"),
                rooms=rooms,
            )
        )
    return placements


class FetBackend(Backend):
    """Runs each instance as a separate ``fet-cl`` process and follows its log."""

    def __init__(
        self,
        constraint_data: ConstraintData,
        working_dir: str,
        executable: str = "fet-cl",
    ) -> None:
        self.constraint_data = constraint_data
        self.working_dir = working_dir
        self.executable = executable

    def _fetdoc(self) -> FetDoc:
        doc = self.constraint_data.input_data
        if not isinstance(doc, FetDoc):
            raise TypeError("constraint data does not hold a FET document")
        return doc

    @staticmethod
    def _data(instance: TtInstance) -> _FetRunData:
        data = instance.backend_data
        if not isinstance(data, _FetRunData):
            raise TypeError(f"instance {instance.tag} has no FET run data")
        return data

    def run(self, instance: TtInstance, testing: bool) -> None:
        tag = instance.tag
        instance_dir = os.path.join(self.working_dir, "tmp", tag)
        os.makedirs(instance_dir, exist_ok=True)
        instance.instance_dir = instance_dir
        fet_file = os.path.join(instance_dir, tag + ".fet")

        fet_xml = self._fetdoc().compose(instance.constraint_enabled)
        Path(fet_file).write_bytes(fet_xml)
        if tag == "COMPLETE":
            stem = self.working_dir
            if stem.endswith("_fet"):
                stem = stem[: -len("_fet")]
            top = os.path.join(self.working_dir, os.path.basename(stem + ".fet"))
            Path(top).write_bytes(fet_xml)

        out_dir = os.path.join(instance_dir, "out")
        shutil.rmtree(out_dir, ignore_errors=True)
        data = _FetRunData(
            fet_file=fet_file,
            fet_xml=fet_xml,
            working_dir=instance_dir,
            out_dir=out_dir,
            log_file=os.path.join(out_dir, "logs", "max_placed_activities.txt"),
        )
        instance.backend_data = data

        args = [
            self.executable,
            f"--inputfile={fet_file}",
            *_OUTPUT_OPTIONS,
            f"--outputdir={out_dir}",
        ]
        if testing:
            args.extend(_TESTING_SEEDS)
        try:
            data.process = subprocess.Popen(
                args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            logger.error("Couldn't start %s: %s", self.executable, e)

    def abort(self, instance: TtInstance) -> None:
        data = self._data(instance)
        if data.process is not None:
            with contextlib.suppress(ProcessLookupError):
                data.process.kill()

    def tick(self, instance: TtInstance) -> None:
        data = self._data(instance)
        finished = data.finished
        if data.log is None:
            try:
                data.log = open(data.log_file, encoding="utf-8", errors="replace")
            except OSError:
                pass
        if data.log is not None:
            self._read_progress(instance, data)
        if finished:
            data.close()
            instance.run_state = RUN_OK if instance.progress == 100 else RUN_FAILED
            with contextlib.suppress(OSError):
                instance.message = Path(data.out_dir, "logs", "errors.txt").read_text(
                    encoding="utf-8", errors="replace"
                )

    def _read_progress(self, instance: TtInstance, data: _FetRunData) -> None:
        assert data.log is not None
        *lines, data.pending = (data.pending + data.log.read()).split("\n")
        if not lines:
            return
        # Only the most recent complete line counts.
        match = _PROGRESS.search(lines[-1])
        if match is None:
            return
        percent = int(match.group(2)) * 100 // self.constraint_data.n_activities
        if percent > instance.progress:
            instance.progress = percent
            instance.last_time = instance.ticks
            log.report(f"{instance.tag}: {percent} @ {instance.ticks}\n")

    def clear(self, instance: TtInstance) -> None:
        data = instance.backend_data
        if isinstance(data, _FetRunData):
            data.close()
            shutil.rmtree(data.working_dir, ignore_errors=True)

    def tidy(self, working_dir: str) -> None:
        shutil.rmtree(os.path.join(working_dir, "tmp"), ignore_errors=True)

    def results(self, instance: TtInstance) -> list[ActivityPlacement]:
        data = self._data(instance)
        Path(self.working_dir, "Result.fet").write_bytes(data.fet_xml)

        xml_path = os.path.join(
            data.out_dir, "timetables", instance.tag, f"{instance.tag}_activities.xml"
        )
        try:
            xml_bytes = Path(xml_path).read_bytes()
        except OSError as e:
            logger.critical("%s", e)
            return []
        logger.info("Reading: %s", xml_path)
        room_index = {
            r.tag: r.index
            for r in self.constraint_data.resources
            if r.type is ResourceType.ROOM
        }
        try:
            return parse_activities_xml(xml_bytes, room_index)
        except ET.ParseError as e:
            logger.critical("XML error in %s:\n %s", xml_path, e)
            return []