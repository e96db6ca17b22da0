"""Interval re-fetch loop used to converge on other members' changes.

While visible, ``fetch`` runs every ``interval`` seconds; becoming visible
again triggers an immediate fetch. Fetches are never cancelled mid-flight:
after :meth:`Poller.stop` a late result is simply dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Poller(Generic[T]):
    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None],
        interval: float = 5.0,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.fetch = fetch
        self.on_result = on_result
        self.interval = interval
        self.on_error = on_error
        self.visible = True
        self._closed = False
        self._wake = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._closed = False
        self._loop_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop scheduling fetches. In-flight fetches finish but are ignored."""
        self._closed = True
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

    def set_visible(self, visible: bool) -> None:
        was_visible = self.visible
        self.visible = visible
        if visible and not was_visible:
            self._wake.set()

    def refresh_now(self) -> asyncio.Task:
        task = asyncio.create_task(self._refresh())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight fetches; mostly useful in tests."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _run(self) -> None:
        while not self._closed:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self.visible and not self._closed:
                self.refresh_now()

    async def _refresh(self) -> None:
        try:
            result = await self.fetch()
        except Exception as exc:
            if self._closed:
                return
            logger.warning("poll fetch failed: %s", exc)
            if self.on_error is not None:
                self.on_error(exc)
            return
        if self._closed:
            logger.debug("dropping poll result after stop")
            return
        self.on_result(result)
