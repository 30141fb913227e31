"""Debounced text search against the event list."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from ..models.event import Event

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

SearchFn = Callable[[str], Awaitable[list[Event]]]
ResultsFn = Callable[[str, list[Event]], None]


class DebouncedSearch:
    """
    Coalesces rapid query input into one request after a quiet period.

    Each ``submit`` supersedes the previous query. A query still waiting out
    its quiet period is cancelled; one already sent runs to completion but
    its response is discarded if a newer query has been submitted since.
    """

    def __init__(
        self,
        search: SearchFn,
        on_results: ResultsFn,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._search = search
        self._on_results = on_results
        self.delay = delay
        self._generation = 0
        self._waiting: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()
        self.requests_sent = 0

    def submit(self, text: str) -> None:
        """Register new query text. Must be called from the running event loop."""
        self._generation += 1
        if self._waiting is not None and not self._waiting.done():
            self._waiting.cancel()
        text = text.strip()
        if not text:
            self._waiting = None
            self._on_results("", [])
            return
        self._waiting = asyncio.get_running_loop().create_task(
            self._debounce(text, self._generation)
        )

    async def _debounce(self, text: str, generation: int) -> None:
        await asyncio.sleep(self.delay)
        # Past the quiet period: the request is no longer cancellable by submit()
        self._waiting = None
        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            self.requests_sent += 1
            results = await self._search(text)
        except Exception as e:
            logger.error(f"Search for {text!r} failed: {e}")
            return
        finally:
            self._in_flight.discard(task)

        if generation != self._generation:
            logger.debug(f"Discarding superseded results for {text!r}")
            return
        self._on_results(text, results)

    async def drain(self) -> None:
        """Wait for the pending query and any in-flight requests to settle."""
        while self._waiting is not None or self._in_flight:
            pending = [t for t in (self._waiting, *self._in_flight) if t is not None]
            await asyncio.gather(*pending, return_exceptions=True)

    def cancel(self) -> None:
        """Drop the pending query; in-flight responses will be discarded."""
        self._generation += 1
        if self._waiting is not None:
            self._waiting.cancel()
            self._waiting = None
