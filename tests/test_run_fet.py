import sys
import time
import xml.etree.ElementTree as ET

import pytest

from fetrunner.fet_read import read_fet
from fetrunner.run_fet import FetBackend, parse_activities_xml
from fetrunner.structures import RUN_ACTIVE, RUN_FAILED, RUN_OK, TtInstance

FET = """<?xml version="1.0" encoding="UTF-8"?>
<fet version="6.0">
<Activities_List>
<Activity><Id>1</Id></Activity>
<Activity><Id>2</Id></Activity>
</Activities_List>
<Rooms_List>
<Room><Name>R1</Name><Virtual>false</Virtual></Room>
<Room><Name>R2</Name><Virtual>false</Virtual></Room>
</Rooms_List>
<Time_Constraints_List>
<ConstraintBasicCompulsoryTime><Weight_Percentage>100</Weight_Percentage><Active>true</Active></ConstraintBasicCompulsoryTime>
<ConstraintTeacherNotAvailableTimes><Weight_Percentage>100</Weight_Percentage><Active>true</Active></ConstraintTeacherNotAvailableTimes>
</Time_Constraints_List>
<Space_Constraints_List>
<ConstraintBasicCompulsorySpace><Weight_Percentage>100</Weight_Percentage><Active>true</Active></ConstraintBasicCompulsorySpace>
</Space_Constraints_List>
</fet>
"""

ROOMS = {"R1": 0, "R2": 1}


@pytest.fixture
def backend(tmp_path):
    src = tmp_path / "sample.fet"
    src.write_text(FET, encoding="utf-8")
    cdata = read_fet(str(src))
    working = tmp_path / "sample_fet"
    working.mkdir()
    return FetBackend(cdata, str(working), executable=sys.executable)


def _instance(tag="inst", enabled=(True, True, True)):
    return TtInstance(tag=tag, constraint_enabled=list(enabled))


def _out(instance):
    from pathlib import Path

    return Path(instance.instance_dir, "out")


def _write_log(instance, text):
    logs = _out(instance) / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    (logs / "max_placed_activities.txt").write_text(text, encoding="utf-8")


def _wait_finished(backend, instance):
    deadline = time.monotonic() + 20
    while instance.run_state == RUN_ACTIVE:
        instance.ticks += 1
        backend.tick(instance)
        if time.monotonic() > deadline:
            raise AssertionError("instance did not finish")
        time.sleep(0.02)


def test_run_writes_fet_with_active_flags(backend):
    inst = _instance(enabled=(True, False, True))
    backend.run(inst, False)
    from pathlib import Path

    fet_file = Path(inst.instance_dir) / "inst.fet"
    root = ET.parse(fet_file).getroot()
    flags = [e.findtext("Active") for lst in root if lst.tag.endswith("Constraints_List") for e in lst]
    assert flags == ["true", "false", "true"]
    _wait_finished(backend, inst)


def test_complete_instance_saved_at_top_level(backend):
    from pathlib import Path

    inst = _instance(tag="COMPLETE")
    backend.run(inst, True)
    top = Path(backend.working_dir) / "sample.fet"
    assert top.read_bytes() == (Path(inst.instance_dir) / "COMPLETE.fet").read_bytes()
    _wait_finished(backend, inst)


def test_full_progress_succeeds(backend):
    inst = _instance()
    backend.run(inst, False)
    _write_log(inst, "time 0.1 s, FET reached 1 activities\ntime 0.2 s, FET reached 2 activities\n")
    _wait_finished(backend, inst)
    assert inst.progress == 100
    assert inst.run_state == RUN_OK


def test_partial_progress_fails(backend):
    inst = _instance()
    backend.run(inst, False)
    _write_log(inst, "time 0.1 s, FET reached 1 activities\n")
    _wait_finished(backend, inst)
    assert 0 < inst.progress < 100
    assert inst.run_state == RUN_FAILED


def test_only_last_line_counts(backend):
    inst = _instance()
    backend.run(inst, False)
    _write_log(inst, "time 0.1 s, FET reached 2 activities\nsomething else\n")
    _wait_finished(backend, inst)
    assert inst.progress == 0
    assert inst.run_state == RUN_FAILED


def test_errors_file_becomes_message(backend):
    inst = _instance()
    backend.run(inst, False)
    _write_log(inst, "")
    (_out(inst) / "logs" / "errors.txt").write_text("bad data", encoding="utf-8")
    _wait_finished(backend, inst)
    assert inst.message == "bad data"


def test_missing_log_fails_when_finished(backend):
    inst = _instance()
    backend.run(inst, False)
    _wait_finished(backend, inst)
    assert inst.progress == 0
    assert inst.run_state == RUN_FAILED


def test_missing_executable_fails(backend, tmp_path):
    backend.executable = str(tmp_path / "no-such-program")
    inst = _instance()
    backend.run(inst, False)
    backend.tick(inst)
    assert inst.run_state == RUN_FAILED


def test_results_reads_placements(backend):
    from pathlib import Path

    inst = _instance()
    backend.run(inst, False)
    _wait_finished(backend, inst)
    tdir = _out(inst) / "timetables" / "inst"
    tdir.mkdir(parents=True)
    (tdir / "inst_activities.xml").write_text(
        "<Activities_Timetable>"
        "<Activity><Id>1</Id><Day>0</Day><Hour>3</Hour><Room>R2</Room></Activity>"
        "<Activity><Id>2</Id><Day>1</Day><Hour>0</Hour><Room></Room></Activity>"
        "</Activities_Timetable>",
        encoding="utf-8",
    )
    placements = backend.results(inst)
    assert [(p.id, p.day, p.hour, p.rooms) for p in placements] == [
        (1, 0, 3, [1]),
        (2, 1, 0, []),
    ]
    result_fet = Path(backend.working_dir) / "Result.fet"
    assert result_fet.read_bytes() == (Path(inst.instance_dir) / "inst.fet").read_bytes()


def test_results_missing_file_is_empty(backend):
    inst = _instance()
    backend.run(inst, False)
    _wait_finished(backend, inst)
    assert backend.results(inst) == []


def test_clear_and_tidy(backend):
    from pathlib import Path

    inst = _instance()
    backend.run(inst, False)
    _wait_finished(backend, inst)
    backend.clear(inst)
    assert not Path(inst.instance_dir).exists()
    tmp = Path(backend.working_dir) / "tmp"
    assert tmp.exists()
    backend.tidy(backend.working_dir)
    assert not tmp.exists()


def test_parse_prefers_real_rooms():
    xml = (
        b"<Activities_Timetable><Activity><Id>5</Id><Day>2</Day><Hour>1</Hour>"
        b"<Room>V</Room><Real_Room>R1</Real_Room><Real_Room>R2</Real_Room>"
        b"</Activity></Activities_Timetable>"
    )
    [p] = parse_activities_xml(xml, ROOMS)
    assert (p.id, p.day, p.hour, p.rooms) == (5, 2, 1, [0, 1])


def test_parse_empty_numbers_are_zero():
    [p] = parse_activities_xml(
        b"<Activities_Timetable><Activity><Id>4</Id></Activity></Activities_Timetable>",
        ROOMS,
    )
    assert (p.id, p.day, p.hour, p.rooms) == (4, 0, 0, [])


def test_parse_unknown_room():
    xml = b"<Activities_Timetable><Activity><Id>1</Id><Room>Z</Room></Activity></Activities_Timetable>"
    with pytest.raises(ValueError, match="Unknown room: Z"):
        parse_activities_xml(xml, ROOMS)


def test_parse_wrong_root():
    with pytest.raises(ET.ParseError):
        parse_activities_xml(b"<Other/>", ROOMS)


def test_parse_bad_integer():
    with pytest.raises(ET.ParseError):
        parse_activities_xml(
            b"<Activities_Timetable><Activity><Id>x</Id></Activity></Activities_Timetable>",
            ROOMS,
        )