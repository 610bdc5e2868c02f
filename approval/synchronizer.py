"""Status synchronization between the execution store and a mounted view."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from common.models import ExecutionRecord, ExecutionStatus
from config import APPROVAL_CONFIG
from store import ExecutionStateStore

logger = logging.getLogger(__name__)

StatusCallback = Callable[[ExecutionRecord], Union[Awaitable[None], None]]


class StatusSubscription(ABC):
    """Source of status changes for one tool call.

    Polling is the only transport today; a push transport can replace it
    without the controller noticing.
    """

    @abstractmethod
    def subscribe(
        self, tool_call_id: str, initial_status: Optional[ExecutionStatus] = None
    ) -> AsyncIterator[ExecutionRecord]:
        """Yield each forward status change until a terminal status or timeout."""
        pass


def should_apply(current: Optional[ExecutionStatus], incoming: ExecutionStatus) -> bool:
    """Apply a record only when its status changed and did not regress."""
    if current is None:
        return True
    if incoming == current or current.is_terminal:
        return False
    return incoming.rank >= current.rank


class PollingStatusSynchronizer(StatusSubscription):
    """Timer-driven poller with one active task per instance.

    One immediate read is made, then one per interval. Polling stops on a
    terminal status, when the maximum duration elapses, or on ``close()``.
    After a timeout the last known status is kept as is.
    """

    def __init__(
        self,
        store: ExecutionStateStore,
        interval_seconds: Optional[float] = None,
        max_duration_seconds: Optional[float] = None,
    ):
        self.store = store
        self.interval = (
            interval_seconds
            if interval_seconds is not None
            else APPROVAL_CONFIG["poll_interval_seconds"]
        )
        self.max_duration = (
            max_duration_seconds
            if max_duration_seconds is not None
            else APPROVAL_CONFIG["poll_max_duration_seconds"]
        )
        self.tool_call_id: Optional[str] = None
        self.last_status: Optional[ExecutionStatus] = None
        self.last_record: Optional[ExecutionRecord] = None
        self.timed_out = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(
        self, tool_call_id: str, initial_status: Optional[ExecutionStatus] = None
    ) -> AsyncIterator[ExecutionRecord]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_duration
        current = initial_status
        polls = 0

        while True:
            polls += 1
            try:
                record = await self.store.get(tool_call_id)
            except Exception as e:
                logger.warning(f"Status poll {polls} for {tool_call_id} failed: {e}")
                record = None

            if record and should_apply(current, record.status):
                current = record.status
                yield record
            if current is not None and current.is_terminal:
                logger.debug(f"Polling for {tool_call_id} reached {current.value}")
                return

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info(
                    f"⏱️ Stopped polling {tool_call_id} after {self.max_duration}s "
                    f"without a terminal status (last: {current.value if current else 'unknown'})"
                )
                self.timed_out = True
                return
            await asyncio.sleep(min(self.interval, remaining))

    def start(
        self,
        tool_call_id: str,
        on_update: Optional[StatusCallback] = None,
        initial_status: Optional[ExecutionStatus] = None,
    ) -> bool:
        """Start polling in the background.

        Returns:
            False when a poll is already active, which leaves it untouched
        """
        if self.is_active:
            logger.debug(f"Poller for {self.tool_call_id} already active, ignoring start")
            return False

        self.tool_call_id = tool_call_id
        if initial_status is not None:
            self.last_status = initial_status
        self.timed_out = False
        self._task = asyncio.create_task(self._run(tool_call_id, on_update))
        logger.debug(f"🔄 Started polling for {tool_call_id}")
        return True

    async def _run(self, tool_call_id: str, on_update: Optional[StatusCallback]) -> None:
        async for record in self.subscribe(tool_call_id, self.last_status):
            self.last_status = record.status
            self.last_record = record
            if on_update is None:
                continue
            try:
                outcome = on_update(record)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Status callback for {tool_call_id} failed: {e}", exc_info=True)

    async def wait(self) -> None:
        """Wait for the active poll to finish on its own."""
        if self._task:
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """Stop polling, e.g. when the owning view is torn down."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.debug(f"Stopped polling for {self.tool_call_id}")
