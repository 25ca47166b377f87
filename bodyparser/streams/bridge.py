"""Pull-based byte stream over a push-only transport body."""

import asyncio
from collections import deque
from collections.abc import Callable
from typing import Any

from bodyparser.core.errors import StreamDestroyedError, StreamError
from bodyparser.core.governor import AbortSignal
from bodyparser.core.logger import LogIcon, logger
from bodyparser.transport.base import TransportResponse


class ResponseStream:
    """Lazy, single-subscriber async iterator over ``response.on_data``.

    The transport only delivers the next chunk once interest is registered
    again, so every pull re-arms ``on_data``. ``is_last`` and an abort both
    end the iteration.
    """

    def __init__(self, response: TransportResponse, abort: AbortSignal | None = None) -> None:
        self._response = response
        self._abort = abort or AbortSignal()
        self._chunks: deque[bytes] = deque()
        self._waiter: asyncio.Future[None] | None = None
        self._error: StreamError | None = None
        self._error_listeners: list[Callable[[StreamError], Any]] = []
        self._ended = False
        self._destroyed = False
        self._abort.subscribe(self._wake)

    @property
    def aborted(self) -> bool:
        return self._abort.aborted

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def on_error(self, listener: Callable[[StreamError], Any]) -> None:
        """Register a listener called once when delivery fails."""
        self._error_listeners.append(listener)

    def destroy(self) -> None:
        """Drop buffered data and refuse any further reads."""
        if self._destroyed:
            return
        self._destroyed = True
        self._chunks.clear()
        self._wake()

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> bytes:
        while not self._chunks:
            if self._destroyed:
                raise StreamDestroyedError("Stream has been destroyed")
            if self._error is not None:
                raise self._error
            if self._ended or self.aborted:
                raise StopAsyncIteration

            self._waiter = asyncio.get_running_loop().create_future()
            try:
                self._response.on_data(self._on_data)
            except Exception as ex:
                self._fail(StreamError(f"Body delivery failed: {ex}"))
            if not self._waiter.done():
                await self._waiter
            self._waiter = None

        if self._destroyed:
            raise StreamDestroyedError("Stream has been destroyed")
        return self._chunks.popleft()

    def _on_data(self, chunk: Any, is_last: bool) -> None:
        if self._destroyed or self._ended or self._error is not None:
            return
        if not isinstance(chunk, (bytes, bytearray, memoryview)):
            self._fail(StreamError(f"Transport delivered a non-binary chunk: {type(chunk).__name__}"))
            return
        # Transports may reuse the chunk's buffer once the callback returns
        data = bytes(chunk)
        if data:
            self._chunks.append(data)
        if is_last:
            self._ended = True
        self._wake()

    def _fail(self, error: StreamError) -> None:
        if self._error is not None:
            return
        self._error = error
        logger.error("Body stream failed", icon=LogIcon.STREAMING, error=str(error))
        for listener in self._error_listeners:
            listener(error)
        self._wake()

    def _wake(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)
