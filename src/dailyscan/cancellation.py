from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from dailyscan.errors import Cancelled

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation shared by every stage of one batch.

    cancel() must be called from the event loop thread.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled("Operation cancelled")

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise Cancelled("Operation cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it as soon as the token is cancelled."""
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            waiter.cancel()
            raise
        if task in done:
            waiter.cancel()
            result = task.result()
            self.raise_if_cancelled()
            return result
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            # failure of the abandoned call is dropped
            pass
        raise Cancelled("Operation cancelled")
