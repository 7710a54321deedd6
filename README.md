# fetrunner

fetrunner takes a timetable in FET's XML format and starts several
`fet-cl` runs at once. Each run has a different set of constraints enabled.
The aim is a timetable that places every activity within a given time,
even if some constraints have to be dropped to get there.

## How it works

Three runs start first:

- `COMPLETE`: every constraint is enabled.
- `HARD_ONLY`: only the hard constraints (weight 100) are enabled.
- `ONLY_BLOCKED_SLOTS`: only the basic compulsory time and space
  constraints are enabled. It has a short timeout.

If the complete run succeeds, its result is used and the program stops.
If the unconstrained run succeeds, further runs are queued, and each of
these adds the constraints of a single type. Constraint types are tried in
priority order: blocked-slot constraints first, gap constraints last, and
all other types in between in alphabetical order.

- A run that succeeds becomes the new base. The other runs are then
  restarted on top of it.
- A run that is too slow or times out is split into two halves, and each
  half is tried again. When a single constraint fails on its own, it is
  dropped.
- When a stage has tried everything, the constraints that are still missing
  are collected again and tried with a longer timeout.

Hard constraints are handled first, then soft ones. When the hard-only run
succeeds, the soft constraints are added on top of its result.

A run with no timeout is stopped if it shows no progress for too long. The
whole process ends in any of these cases:

- the overall timeout is reached;
- the complete run succeeds;
- no constraints are left to add;
- the process receives SIGINT or SIGTERM.

At the end, any runs still going are stopped. The program then prints a
summary of how many constraints of each type the accepted result enables,
for example `$ (HARD) ConstraintTeacherMaxGapsPerDay: 3 / 4`.

## Requirements

- Python 3.10 or later.
- The FET command-line program `fet-cl` must be on `PATH`.

## Installation

```
pip install .
```

## Usage

```
fetrunner [-c] [-T] [-t SECONDS] [-p N] [-d] timetable.fet
```

Options:

- `-c`: print progress to the console.
- `-T`: testing mode. FET is given fixed random seeds.
- `-t SECONDS`: overall timeout in seconds. The default is 300.
- `-p N`: the most FET processes that may run at once. By default this is
  the number of CPUs, but never fewer than 4 or more than 6.
- `-d`: debug mode. Temporary run directories are kept, and the result of
  each accepted run is saved as `<tag>.json`.

The exit status is 0 if some run was accepted. It is 1 in these cases:

- the input cannot be read;
- the unconstrained run fails;
- no run succeeded.

Output goes to a working directory next to the input file. For
`timetable.fet` this directory is `timetable_fet/`, and any earlier
contents are removed when a run starts. It holds:

- `run.log`: the log of the steps taken.
- `Result.json`: the placements (activity id, day, hour, rooms) and the
  unfulfilled hard and soft constraints of the last accepted run.
- `Result.fet`: the FET file of the last accepted run.
- `timetable.fet`: the FET file of the fully constrained run.
- `tmp/`: per-run directories, which are removed unless `-d` is given.

A copy of the parsed input is also written next to the input file, as
`timetable_mod.fet`.

## Use from Python

`fetrunner.fet_read.read_fet(path)` returns a `ConstraintData`, with the
parsed document in `input_data` as a `FetDoc`. You can drive a generation
yourself like this:

```python
from fetrunner.fet_read import read_fet
from fetrunner.run_fet import FetBackend
from fetrunner.steer import start_generation
from fetrunner.structures import RunContext, Settings

cdata = read_fet("timetable.fet")
context = RunContext(
    constraint_data=cdata,
    backend=FetBackend(cdata, "timetable_fet"),
    working_dir="timetable_fet",
    settings=Settings(max_processes=4),
)
best = start_generation(context, 300)
```

`start_generation` returns the accepted `TtInstance`, or `None` if no run
succeeded. The accepted result is also available as `context.last_result`.
You can plug in another generator by subclassing `structures.Backend`.

## Limitations

- Only real (non-virtual) rooms are read as resources. Teachers and groups
  are not.
- If the unconstrained run fails, generation stops with an error. No
  further analysis of the activity data is attempted.

## Running the tests

```
pip install .[test]
pytest
```