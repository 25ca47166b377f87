"""Transport capabilities consumed by the parse engine."""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

HeaderCallback = Callable[[str, str], None]
DataCallback = Callable[[bytes | bytearray | memoryview, bool], None]
AbortCallback = Callable[[], None]


@runtime_checkable
class TransportRequest(Protocol):
    """Request side of an HTTP transport (uWebSockets / socketify style)."""

    def for_each_header(self, callback: HeaderCallback) -> None: ...

    def get_query(self) -> str: ...

    def get_method(self) -> str: ...

    def get_url(self) -> str: ...


@runtime_checkable
class TransportResponse(Protocol):
    """Response side: push-based body delivery and abort notification.

    ``on_data`` delivers ``(chunk, is_last)``; registering again replaces the
    previous callback. Implementations may also expose an ``aborted`` flag.
    """

    def on_data(self, callback: DataCallback) -> None: ...

    def on_aborted(self, callback: AbortCallback) -> None: ...
