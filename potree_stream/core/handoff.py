"""Single-use rendezvous between the handshake task and the pipeline task."""

from __future__ import annotations

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class OneShot(Generic[T]):
    """A value that can be delivered exactly once and awaited by anyone.

    Later ``set`` calls are rejected rather than overwriting the first value.
    """

    def __init__(self) -> None:
        self._future: Optional[asyncio.Future[T]] = None

    def _get_future(self) -> asyncio.Future[T]:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    def is_set(self) -> bool:
        return self._future is not None and self._future.done()

    def set(self, value: T) -> bool:
        future = self._get_future()
        if future.done():
            return False
        future.set_result(value)
        return True

    async def wait(self, timeout: Optional[float] = None) -> T:
        """Wait for the value. Raises ``asyncio.TimeoutError`` on expiry."""
        future = self._get_future()
        if timeout is None:
            return await asyncio.shield(future)
        return await asyncio.wait_for(asyncio.shield(future), timeout)

    def value(self) -> Optional[T]:
        if not self.is_set():
            return None
        return self._future.result()


__all__ = ["OneShot"]
