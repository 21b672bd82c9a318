"""
Periodic task scheduler.

An ``IntervalTask`` invokes an async handler on a fixed interval. The next
invocation is armed only after the previous one returned, so invocations never
overlap. Handler failures are logged and do not stop the schedule.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from .errors import InvalidConfiguration, TaskStateError

logger = logging.getLogger(__name__)


class TaskState(Enum):
    """Lifecycle state of an interval task."""
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class IntervalTask:
    """
    Serialized periodic invocation of ``handler(context)``.

    All scheduling state (timer handle, in-flight run, stopped flag) is private
    to the instance, so several tasks can run independently in one event loop.
    """

    def __init__(
        self,
        start_delay: float,
        interval: float,
        name: str,
        context: Any,
        handler: Callable[[Any], Awaitable[None]],
    ) -> None:
        """
        Initialize the task.

        Args:
            start_delay: Seconds between ``start()`` and the first invocation
            interval: Seconds between the end of one invocation and the next
            name: Task name used in log messages
            context: Object passed to every handler invocation
            handler: Coroutine function to invoke

        Raises:
            InvalidConfiguration: If ``start_delay`` or ``interval`` is not positive
        """
        if start_delay <= 0 or interval <= 0:
            raise InvalidConfiguration(
                f"Invalid schedule for task \"{name}\": start_delay and interval "
                f"must be greater than 0, got {start_delay} and {interval}"
            )

        self.name = name
        self.start_delay = start_delay
        self.interval = interval
        self.context = context
        self.handler = handler

        self.state = TaskState.CREATED
        self.invocations = 0

        self._stopped = False
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task | None = None

    @property
    def is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        """Arm the first invocation. Must be called from a running event loop."""
        if self.state is not TaskState.CREATED:
            raise TaskStateError(
                f"Task \"{self.name}\" cannot be started from state {self.state.value}"
            )
        self.state = TaskState.RUNNING
        self._arm(self.start_delay)
        logger.info(f"Task \"{self.name}\" started (first run in {self.start_delay}s)")

    async def stop(self) -> bool:
        """
        Stop the schedule.

        Cancels the pending timer and waits for an in-flight invocation to finish
        without interrupting it. Wrap in ``asyncio.wait_for`` for a bounded wait.

        Returns:
            True once no further invocation can be armed
        """
        logger.info(f"Task \"{self.name}\" stopping")
        self._stopped = True
        self.state = TaskState.STOPPED

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.info(f"Task \"{self.name}\" waiting for in-flight run to finish")
            await asyncio.shield(inflight)

        logger.info(f"Task \"{self.name}\" stopped after {self.invocations} runs")
        return True

    def _arm(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._stopped:
            return
        self._inflight = asyncio.create_task(self._run_handler(), name=f"{self.name}-run")

    async def _run_handler(self) -> None:
        self.invocations += 1
        try:
            await self.handler(self.context)
        except asyncio.CancelledError:
            # Loop teardown; nothing left to schedule
            self._stopped = True
            raise
        except Exception as e:
            logger.error(f"Unexpected exception running task \"{self.name}\": {e}", exc_info=True)
        finally:
            if not self._stopped:
                self._arm(self.interval)


def make_interval_task(
    start_delay: float,
    interval: float,
    name: str,
    context: Any,
    handler: Callable[[Any], Awaitable[None]],
) -> IntervalTask:
    """Create an interval task; see ``IntervalTask`` for the arguments."""
    logger.info(f"Creating task \"{name}\" with interval {interval}s")
    return IntervalTask(start_delay, interval, name, context, handler)
