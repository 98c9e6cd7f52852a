"""
Per-consumer ordered work queues.

Each consumer of final utterances gets its own queue and task, so a slow
consumer only delays itself and every consumer still sees utterances in
arrival order.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from interpreter_core.streaming.models import Utterance

logger = structlog.get_logger(__name__)


Handler = Callable[[Utterance], Awaitable[Any]]
ErrorHandler = Callable[[str, BaseException], Awaitable[None]]


class ConsumerWorker:
    """Feeds one handler from its own FIFO queue."""

    _STOP = object()

    def __init__(
        self,
        name: str,
        handler: Handler,
        on_error: Optional[ErrorHandler] = None,
        maxsize: int = 0,
    ):
        self.name = name
        self._handler = handler
        self._on_error = on_error
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"consumer-{self.name}")

    async def submit(self, utterance: Utterance) -> None:
        await self._queue.put(utterance)

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is self._STOP:
                return
            try:
                await self._handler(item)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(f"Consumer {self.name} failed: {e}")
                if self._on_error is not None:
                    await self._on_error(self.name, e)

    async def drain(self, timeout: float) -> bool:
        """Process what is queued, then stop.

        Returns False if the queue did not empty within ``timeout`` seconds;
        the task is cancelled in that case.
        """
        task = self._task
        if task is None or task.done():
            return True

        await self._queue.put(self._STOP)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Consumer {self.name} did not drain in {timeout}s",
                pending=self._queue.qsize(),
            )
            await self.cancel()
            return False

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def status(self) -> dict:
        return {
            "running": self.is_running,
            "pending": self.pending,
            "processed": self.processed,
            "failed": self.failed,
        }
