"""One-shot settlement and abort tracking shared by a single parse."""

import asyncio
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from bodyparser.core.logger import LogIcon, logger

T = TypeVar("T")


class Settlement(Generic[T]):
    """Resolves or rejects exactly once; later outcomes are dropped."""

    __slots__ = ("_future",)

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def settle(self, value: T) -> bool:
        """Resolve with value. Returns False when already settled."""
        if self._future.done():
            logger.debug("Late resolution ignored", icon=LogIcon.SKIP)
            return False
        self._future.set_result(value)
        return True

    def fail(self, error: BaseException) -> bool:
        """Reject with error. Returns False when already settled."""
        if self._future.done():
            logger.debug("Late rejection ignored", icon=LogIcon.SKIP, error=repr(error))
            return False
        self._future.set_exception(error)
        return True

    async def wait(self) -> T:
        return await self._future


class AbortSignal:
    """Tracks the transport's abort notification for one request."""

    __slots__ = ("aborted", "_listeners")

    def __init__(self) -> None:
        self.aborted = False
        self._listeners: list[Callable[[], Any]] = []

    @classmethod
    def attach(cls, response: Any) -> "AbortSignal":
        """Register on the response and pick up an abort that already happened."""
        signal = cls()
        response.on_aborted(signal.abort)
        if getattr(response, "aborted", False):
            signal.abort()
        return signal

    def subscribe(self, listener: Callable[[], Any]) -> None:
        self._listeners.append(listener)

    def abort(self) -> None:
        if self.aborted:
            return
        self.aborted = True
        logger.warning("Request aborted", icon=LogIcon.FORBIDDEN)
        for listener in self._listeners:
            listener()
