"""Queue of generation instances, started as processor slots become free."""

from __future__ import annotations

from collections import deque

from fetrunner.log import logger
from fetrunner.structures import (
    CANCELLED,
    FAILED,
    QUEUED,
    RUN_ACTIVE,
    RUN_OK,
    RUNNING,
    SUCCEEDED,
    RunContext,
    TtInstance,
)


def abort_instance(context: RunContext, instance: TtInstance) -> None:
    """Stop the instance via the back-end, at most once."""
    if not instance.stopped:
        context.backend.abort(instance)
        instance.stopped = True


class RunQueue:
    """Instances waiting to run, and those currently active."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.queue: deque[TtInstance] = deque()
        self.active: dict[TtInstance, None] = {}

    @property
    def max_running(self) -> int:
        return self.context.settings.max_processes

    def add(self, instance: TtInstance) -> None:
        instance.processing_state = QUEUED
        self.queue.append(instance)

    def update_instances(self) -> None:
        """Advance the active instances by one tick and react to their state."""
        ctx = self.context
        for instance in list(self.active):
            if instance.run_state != RUN_ACTIVE and instance.processing_state < FAILED:
                raise RuntimeError(f"Bug, State = {instance.run_state}")
            if instance.run_state == RUN_ACTIVE:
                instance.ticks += 1
                ctx.backend.tick(instance)
            if instance.processing_state == CANCELLED:
                continue  # await completion of the run
            if instance.run_state == RUN_ACTIVE:
                self._check_progress(instance)
            elif instance.run_state == RUN_OK:
                logger.info("[%d] <<+ %s @ %d", ctx.ticks, instance.tag, instance.ticks)
                instance.processing_state = SUCCEEDED
            else:
                logger.info("[%d] <<- %s @ %d", ctx.ticks, instance.tag, instance.ticks)
                instance.processing_state = FAILED

    def _check_progress(self, instance: TtInstance) -> None:
        ctx = self.context
        if instance.progress == 100:
            return  # the state will change next time round
        timeout = instance.timeout
        if timeout == 0:
            # Without a timeout, stop an instance that seems stuck.
            settings = ctx.settings
            if (
                instance.last_time < settings.last_time_0
                and instance.ticks >= settings.last_time_1
            ):
                abort_instance(ctx, instance)
            return
        limit = instance.ticks * 100 // timeout
        if instance.progress < limit:
            if instance.progress * 2 > limit:
                return
            logger.info(
                "[%d] Trap %s @ %d (%d): %d",
                ctx.ticks,
                instance.tag,
                instance.ticks,
                instance.progress,
                len(instance.constraints),
            )
            abort_instance(ctx, instance)

    def update_queue(self) -> int:
        """Drop finished instances, start queued ones; return the number active."""
        ctx = self.context
        running = 0
        for instance in list(self.active):
            if instance.run_state != RUN_ACTIVE:
                del self.active[instance]
                if not ctx.settings.debug:
                    ctx.backend.clear(instance)
                continue
            if instance.processing_state in (RUNNING, CANCELLED):
                running += 1
        while self.queue and running < self.max_running:
            instance = self.queue.popleft()
            if instance.processing_state == QUEUED:
                instance.processing_state = RUNNING
                self.active[instance] = None
                running += 1
            elif instance.processing_state == CANCELLED:
                continue  # cancelled before starting
            else:
                raise RuntimeError("Bug")
            logger.info("[%d] >> %s {%d}", ctx.ticks, instance.tag, instance.timeout)
            ctx.backend.run(instance, ctx.settings.testing)
        return len(self.active)