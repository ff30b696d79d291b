"""Call-coalescing for outbound message edits.

A Debouncer wraps a zero-argument coroutine function. The first exec() in a
quiet window runs the function immediately (leading call); further exec()
calls inside the window only mark the window pending and wait for it. When
the window closes, one trailing call runs if anything was pending, and all
waiting callers receive its result.

The wrapped function is expected to act on *current* state, not on
per-call arguments: overlapping callers share the trailing call's result.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

DEBOUNCE_INTERVAL = 1.0  # seconds


class Debouncer:
    """Coalesce bursts of calls into at most one leading and one trailing run."""

    def __init__(
        self,
        func: Callable[[], Awaitable[Any]],
        interval: float = DEBOUNCE_INTERVAL,
    ) -> None:
        self._func = func
        self._interval = interval
        self._window: asyncio.Future[Any] | None = None
        self._window_task: asyncio.Task[None] | None = None
        self._pending = False

    @property
    def open(self) -> bool:
        """Whether a quiet window is currently open."""
        return self._window is not None

    async def exec(self) -> Any:
        if self._window is not None:
            self._pending = True
            # Shield: one cancelled waiter must not cancel the shared window
            return await asyncio.shield(self._window)

        loop = asyncio.get_running_loop()
        window: asyncio.Future[Any] = loop.create_future()
        self._window = window
        self._window_task = asyncio.create_task(self._close_window(window))
        return await self._func()

    async def _close_window(self, window: "asyncio.Future[Any]") -> None:
        try:
            await asyncio.sleep(self._interval)

            pending = self._pending
            self._reset(window)

            if not pending:
                window.set_result(None)
                return

            logger.debug(
                "Debounce window closed with pending calls, running trailing call"
            )
            try:
                result = await self._func()
            except Exception as e:
                window.set_exception(e)
            else:
                window.set_result(result)
        finally:
            # Cancelled window task or BaseException from the trailing call
            self._reset(window)
            if not window.done():
                window.cancel()

    def _reset(self, window: "asyncio.Future[Any]") -> None:
        if self._window is window:
            self._pending = False
            self._window = None
            self._window_task = None
