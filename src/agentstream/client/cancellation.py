"""Client-side abort handle for one in-flight request."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List

LOGGER = logging.getLogger(__name__)

AbortCallback = Callable[[], None]


class CancellationController:
    """Idempotent abort signal shared by the session and the transport.

    ``abort()`` sets the signal, cancels the attached reader task and runs
    the registered callbacks, all on the first call only. Later calls
    return ``False`` and do nothing.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._callbacks: List[AbortCallback] = []

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def signal(self) -> asyncio.Event:
        return self._event

    def attach(self, task: asyncio.Task) -> None:
        """Cancel ``task`` when the request is aborted."""

        self._task = task
        if self.aborted and not task.done():
            task.cancel()

    def on_abort(self, callback: AbortCallback) -> None:
        self._callbacks.append(callback)

    def abort(self) -> bool:
        if self._event.is_set():
            return False
        self._event.set()
        LOGGER.debug("Request aborted by client")
        if self._task is not None and not self._task.done():
            self._task.cancel()
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                LOGGER.exception("Abort callback %r failed", callback)
        return True

    async def wait(self) -> None:
        await self._event.wait()


__all__ = ["AbortCallback", "CancellationController"]
