from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal, Optional, Union

from ..core.timeutil import now_utc
from ..domain.interfaces import PullAdapter, PushAdapter
from .publisher import Publisher

logger = logging.getLogger(__name__)

Mapper = Callable[[Any], list]


@dataclass
class PollStats:
    mode: str = "pull"
    polls: int = 0
    poll_failures: int = 0
    last_poll_utc: Optional[datetime] = None
    last_error: Optional[str] = None


class PollScheduler:
    """
    Drives the adapter and publishes what it returns.

    pull: call ``adapter.get_status()`` every ``interval_s`` seconds.
    push: consume ``adapter.poll_summary(interval_s, on_error)`` until it ends;
    failures the adapter recovers from are counted through ``on_error``.

    Every result goes through ``mapper`` which returns ``(signal, record)``
    pairs in a fixed order; each pair is handed to the publisher.
    """

    def __init__(
        self,
        adapter: Union[PullAdapter, PushAdapter],
        publisher: Publisher,
        mapper: Mapper,
        interval_s: float,
        lock: Optional[asyncio.Lock] = None,
        mode: Literal["pull", "push"] = "pull",
    ) -> None:
        self._adapter = adapter
        self._publisher = publisher
        self._mapper = mapper
        self._interval = interval_s
        self._lock = lock or asyncio.Lock()
        self._mode = mode

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.stats = PollStats(mode=mode)

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    async def start(self) -> None:
        self._stop.clear()
        runner = self._run_pull if self._mode == "pull" else self._run_push
        self._task = asyncio.create_task(runner(), name=f"poll_{self._mode}")

    async def stop(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if self._mode == "push":
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _emit(self, result: Any) -> None:
        for signal, record in self._mapper(result):
            await self._publisher.publish(signal, record)

    async def poll_once(self) -> bool:
        """One pull cycle. Returns False if the adapter call failed."""
        self.stats.polls += 1
        self.stats.last_poll_utc = now_utc()
        try:
            async with self._lock:
                result = await self._adapter.get_status()
        except Exception as e:
            self.stats.poll_failures += 1
            self.stats.last_error = str(e)
            logger.exception("Poll of %s failed: %s", self._adapter.adapter_id, e)
            return False

        try:
            await self._emit(result)
        except Exception as e:
            self.stats.last_error = str(e)
            logger.exception("Publishing poll result failed: %s", e)
        return True

    async def _run_pull(self) -> None:
        logger.info("Poll loop started (mode=pull interval=%ss)", self._interval)

        while not self._stop.is_set():
            await self.poll_once()

            # sleep with cancellation awareness
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Poll loop stopped")

    def _push_failed(self, error: Exception) -> None:
        self.stats.polls += 1
        self.stats.last_poll_utc = now_utc()
        self.stats.poll_failures += 1
        self.stats.last_error = str(error)
        logger.warning("Poll of %s failed: %s", self._adapter.adapter_id, error)

    async def _run_push(self) -> None:
        logger.info("Poll loop started (mode=push interval=%ss)", self._interval)

        async for summary in self._adapter.poll_summary(self._interval, on_error=self._push_failed):
            self.stats.polls += 1
            self.stats.last_poll_utc = now_utc()
            logger.info("Summary: %s", summary)
            try:
                await self._emit(summary)
            except Exception as e:
                self.stats.last_error = str(e)
                logger.exception("Publishing summary failed: %s", e)

        logger.info("Summary stream closed, poll loop finished")
