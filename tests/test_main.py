import os
from pathlib import Path
from unittest import mock

import pytest

from fetrunner.main import main, parse_args

FET_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<fet version="6.0">
  <Activities_List>
    <Activity><Id>1</Id></Activity>
    <Activity><Id>2</Id></Activity>
  </Activities_List>
  <Time_Constraints_List>
    <ConstraintBasicCompulsoryTime>
      <Weight_Percentage>100</Weight_Percentage>
      <Active>true</Active>
    </ConstraintBasicCompulsoryTime>
    <ConstraintTeacherNotAvailableTimes>
      <Weight_Percentage>100</Weight_Percentage>
      <Active>true</Active>
    </ConstraintTeacherNotAvailableTimes>
    <ConstraintTeachersMaxGapsPerDay>
      <Weight_Percentage>95</Weight_Percentage>
      <Active>true</Active>
    </ConstraintTeachersMaxGapsPerDay>
  </Time_Constraints_List>
  <Space_Constraints_List>
    <ConstraintBasicCompulsorySpace>
      <Weight_Percentage>100</Weight_Percentage>
      <Active>true</Active>
    </ConstraintBasicCompulsorySpace>
  </Space_Constraints_List>
  <Rooms_List>
    <Room><Name>r1</Name><Virtual>false</Virtual></Room>
  </Rooms_List>
</fet>
"""


@pytest.fixture
def fet_file(tmp_path: Path) -> Path:
    path = tmp_path / "school.fet"
    path.write_text(FET_SAMPLE, encoding="utf-8")
    return path


def test_parse_args_defaults():
    args = parse_args(["data.fet"])
    assert args.input_file == "data.fet"
    assert args.timeout == 300
    assert args.processes == 0
    assert (args.console, args.testing, args.debug) == (False, False, False)


def test_parse_args_flags():
    args = parse_args(["-c", "-T", "-d", "-t", "60", "-p", "3", "x.fet"])
    assert args.console and args.testing and args.debug
    assert args.timeout == 60
    assert args.processes == 3
    assert args.input_file == "x.fet"


def test_parse_args_no_input_file():
    with pytest.raises(SystemExit) as exc:
        parse_args([])
    assert exc.value.code == 2


def test_parse_args_too_many_files():
    with pytest.raises(SystemExit) as exc:
        parse_args(["a.fet", "b.fet"])
    assert exc.value.code == 2


def test_parse_args_bad_timeout():
    with pytest.raises(SystemExit):
        parse_args(["-t", "soon", "a.fet"])


def test_main_unreadable_input(tmp_path: Path):
    bad = tmp_path / "broken.fet"
    bad.write_text("<fet><unclosed>", encoding="utf-8")
    assert main([str(bad)]) == 1
    log_text = (tmp_path / "broken_fet" / "run.log").read_text(encoding="utf-8")
    assert "*ERROR*" in log_text


@mock.patch("time.sleep")
@mock.patch("subprocess.Popen", side_effect=OSError("no such program"))
def test_main_generator_missing(popen, sleep, fet_file: Path, tmp_path: Path):
    status = main([str(fet_file)])
    assert status == 1
    assert popen.call_count == 3

    working_dir = tmp_path / "school_fet"
    assert (working_dir / "run.log").is_file()
    # The complete instance's FET file is saved at the top of the working dir.
    assert (working_dir / "school.fet").is_file()
    # Temporary files are removed when not debugging.
    assert not (working_dir / "tmp").exists()

    modified = (tmp_path / "school_mod.fet").read_text(encoding="utf-8")
    assert "ConstraintTeacherNotAvailableTimes" in modified

    log_text = (working_dir / "run.log").read_text(encoding="utf-8")
    assert "*ERROR*" in log_text


@mock.patch("time.sleep")
@mock.patch("subprocess.Popen", side_effect=OSError("no such program"))
def test_main_debug_keeps_instance_files(popen, sleep, fet_file: Path, tmp_path: Path):
    assert main(["-d", "-T", str(fet_file)]) == 1
    tmp_dir = tmp_path / "school_fet" / "tmp"
    assert sorted(os.listdir(tmp_dir)) == sorted(
        ["COMPLETE", "HARD_ONLY", "ONLY_BLOCKED_SLOTS"]
    )
    command = popen.call_args_list[0].args[0]
    assert "--randomseeds10=10" in command
    assert any(a.startswith("--inputfile=") for a in command)


@mock.patch("time.sleep")
@mock.patch("subprocess.Popen", side_effect=OSError("no such program"))
def test_main_replaces_old_working_dir(popen, sleep, fet_file: Path, tmp_path: Path):
    working_dir = tmp_path / "school_fet"
    working_dir.mkdir()
    stale = working_dir / "stale.txt"
    stale.write_text("old", encoding="utf-8")
    status = main([str(fet_file)])
    assert status == 1
    assert not stale.exists()
    assert (working_dir / "run.log").is_file()
    assert (working_dir / "school.fet").is_file()