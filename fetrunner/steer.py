"""Driver that steers parallel generation runs towards a maximally constrained timetable.

A run with all constraints enabled, one with only the hard constraints and
one with no negotiable constraints are started together. Once the
unconstrained run succeeds, the constraints are added back type by type. A
successful run becomes the new base. A run that times out is split into
halves, until single troublesome constraints are dropped. When a stage has
tried every constraint, the rejected ones are tried again with a longer
timeout.
"""

from __future__ import annotations

import contextlib
import os
import signal
import threading
import time
from collections.abc import Iterator
from typing import Optional

from fetrunner.constraints import get_basic_constraints
from fetrunner.log import logger
from fetrunner.result import build_result, save_result
from fetrunner.runqueue import RunQueue, abort_instance
from fetrunner.structures import (
    CANCELLED,
    FAILED,
    QUEUED,
    RUN_ACTIVE,
    RUNNING,
    SUCCEEDED,
    ConstraintData,
    RunContext,
    TtInstance,
    new_instance,
)

TICK_SECONDS = 1.0


class GenerationError(RuntimeError):
    """Raised when generation cannot proceed at all."""


@contextlib.contextmanager
def _stop_on_signals() -> Iterator[threading.Event]:
    """An event that is set on SIGINT or SIGTERM while the block runs."""
    event = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield event
        return

    def handler(signum, frame):  # noqa: ARG001
        event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    try:
        yield event
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old if old is not None else signal.SIG_DFL)


def summarize(constraint_data: ConstraintData, instance: TtInstance) -> list[str]:
    """Lines reporting how many constraints of each type the instance enables."""
    lines: list[str] = []
    totals = {}
    for label, cmap in (
        ("HARD", constraint_data.hard_constraint_map),
        ("SOFT", constraint_data.soft_constraint_map),
    ):
        n_enabled = 0
        n_all = 0
        for ctype, clist in cmap.items():
            if not clist:
                continue
            n = sum(1 for i in clist if instance.constraint_enabled[i])
            lines.append(f"$ ({label}) {ctype}: {n} / {len(clist)}")
            n_enabled += n
            n_all += len(clist)
        totals[label] = (n_enabled, n_all)
    hn, hall = totals["HARD"]
    sn, sall = totals["SOFT"]
    lines.append(f"$ ALL CONSTRAINTS: (hard) {hn} / {hall}  (soft) {sn} / {sall}")
    return lines


def _wind_up(context: RunContext, runqueue: RunQueue) -> None:
    """Stop remaining runs, remove temporary files and save the last result."""
    while True:
        count = 0
        for instance in list(runqueue.active):
            if instance.run_state == RUN_ACTIVE:
                context.backend.tick(instance)
                count += 1
                abort_instance(context, instance)
        if count == 0:
            break
        time.sleep(TICK_SECONDS)
    if not context.settings.debug:
        context.backend.tidy(context.working_dir)
    if context.last_result is not None:
        save_result(
            context.last_result, os.path.join(context.working_dir, "Result.json")
        )


def start_generation(context: RunContext, timeout: int) -> Optional[TtInstance]:
    """Run the generation cycle for at most ``timeout`` ticks.

    Returns the instance whose result was accepted last, or None if no
    instance succeeded.
    """
    cdata = context.constraint_data
    settings = context.settings
    context.last_result = None
    context.ticks = 0
    runqueue = RunQueue(context)
    n = cdata.n_constraints

    full_instance = TtInstance(
        tag="COMPLETE", timeout=0, constraint_enabled=[True] * n
    )
    runqueue.add(full_instance)

    enabled = [False] * n
    for clist in cdata.hard_constraint_map.values():
        for i in clist:
            enabled[i] = True
    hard_instance = TtInstance(tag="HARD_ONLY", timeout=0, constraint_enabled=enabled)
    runqueue.add(hard_instance)

    context.cycle_timeout = settings.stage_timeout_min
    null_instance = TtInstance(
        tag="ONLY_BLOCKED_SLOTS",
        timeout=context.cycle_timeout,
        constraint_enabled=[False] * n,
    )
    runqueue.add(null_instance)

    stage = 0
    soft = False
    full_progress = full_progress_ticks = 0
    hard_progress = hard_progress_ticks = 0
    constraint_list: list[TtInstance] = []
    current: Optional[TtInstance] = None

    def accept(instance: TtInstance) -> None:
        nonlocal current
        current = instance
        build_result(context, instance)

    with _stop_on_signals() as stop:
        try:
            while runqueue.update_queue() != 0 or stage >= 0:
                time.sleep(TICK_SECONDS)
                if stop.is_set():
                    logger.info("*** INTERRUPTED @ %d ***", context.ticks)
                    break

                context.ticks += 1
                ticks = context.ticks
                runqueue.update_instances()

                if full_instance.processing_state == SUCCEEDED:
                    accept(full_instance)
                    logger.info("*** All constraints OK @ %d ***", ticks)
                    break
                if full_instance.progress > full_progress:
                    full_progress = full_instance.progress
                    full_progress_ticks = ticks
                    logger.info(
                        "[%d] ? %s (%d @ %d)",
                        ticks, full_instance.tag, full_progress, full_progress_ticks,
                    )

                if not soft:
                    if hard_instance.processing_state == SUCCEEDED:
                        accept(hard_instance)
                        logger.info("*** All hard constraints OK @ %d ***", ticks)
                        if null_instance.processing_state == RUNNING:
                            abort_instance(context, null_instance)
                        for instance in constraint_list:
                            if instance.processing_state == RUNNING:
                                abort_instance(context, instance)
                            instance.processing_state = CANCELLED
                        constraint_list = []
                        soft = True
                        logger.info(
                            "[%d] Soft constraints based on hard-only instance", ticks
                        )
                    elif hard_instance.progress > hard_progress:
                        hard_progress = hard_instance.progress
                        hard_progress_ticks = ticks
                        logger.info(
                            "[%d] ? %s (%d @ %d)",
                            ticks, hard_instance.tag, hard_progress, hard_progress_ticks,
                        )

                if ticks == timeout:
                    logger.info(
                        "[%d] TIMEOUT (%d @ %d) (%d @ %d)",
                        ticks, full_progress, full_progress_ticks,
                        hard_progress, hard_progress_ticks,
                    )
                    break

                if stage < 0:
                    continue

                if stage == 0:
                    state = null_instance.processing_state
                    if state in (QUEUED, RUNNING):
                        if null_instance.ticks == null_instance.timeout:
                            abort_instance(context, null_instance)
                        continue
                    if state == SUCCEEDED:
                        accept(null_instance)
                        logger.info(
                            "[%d] INITIAL CONSTRAINT-TYPES: %d",
                            ticks, len(constraint_list),
                        )
                    else:
                        stage = -10
                        logger.info("[%d] Unconstrained instance failed", ticks)
                        logger.error(" ... %s", null_instance.message)
                        raise GenerationError(
                            "Unconstrained instance failed: " + null_instance.message
                        )

                assert current is not None
                next_timeout = 0  # non-zero: restart with a new base

                for i, instance in enumerate(constraint_list):
                    if instance.processing_state == SUCCEEDED:
                        accept(instance)
                        next_timeout = max(
                            instance.ticks * settings.new_base_timeout_factor // 10,
                            context.cycle_timeout,
                        )
                        del constraint_list[i]
                        break

                if not constraint_list:
                    context.cycle_timeout = (
                        max(context.cycle_timeout, current.ticks)
                        * settings.new_stage_timeout_factor
                        // 10
                    )
                    constraint_list, count = get_basic_constraints(
                        current, cdata, soft, context.cycle_timeout
                    )
                    if count == 0:
                        if soft:
                            break  # solution found
                        logger.info(
                            "[%d] Soft constraints based on accumulated instance",
                            ticks,
                        )
                        soft = True
                        constraint_list, count = get_basic_constraints(
                            current, cdata, soft, context.cycle_timeout
                        )
                        if count == 0:
                            break  # solution found
                        if hard_instance.processing_state == RUNNING:
                            abort_instance(context, hard_instance)
                    stage += 1
                    for instance in constraint_list:
                        runqueue.add(instance)
                    logger.info(
                        "[%d] Stage %d (%s): %d (timeout %d)",
                        ticks, stage, "soft" if soft else "hard",
                        count, context.cycle_timeout,
                    )
                    continue

                split_instances: list[TtInstance] = []
                kept: list[TtInstance] = []
                for instance in constraint_list:
                    if instance.processing_state == FAILED:
                        if len(instance.constraints) > 1:
                            t = next_timeout or instance.timeout
                            half = len(instance.constraints) // 2
                            for part in (
                                instance.constraints[:half],
                                instance.constraints[half:],
                            ):
                                split_instances.append(
                                    new_instance(
                                        current, instance.constraint_type, part, t
                                    )
                                )
                        elif not instance.constraints:
                            raise RuntimeError("Bug, expected constraint(s)")
                        continue
                    if next_timeout:
                        if instance.processing_state == RUNNING:
                            abort_instance(context, instance)
                        instance.processing_state = CANCELLED
                        instance = new_instance(
                            current,
                            instance.constraint_type,
                            instance.constraints,
                            next_timeout,
                        )
                        runqueue.add(instance)
                    kept.append(instance)
                constraint_list = kept + split_instances
                for instance in split_instances:
                    runqueue.add(instance)
        finally:
            _wind_up(context, runqueue)

    if current is None:
        logger.info("No successful instance")
        return None
    for line in summarize(cdata, current):
        print(line)
    logger.info("RESULT: %s", current.tag)
    return current