"""Expose a Robyn request through the transport protocols.

Robyn hands handlers a fully buffered body, so the response side pushes it
as a single final chunk, and never reports an abort.
"""

import asyncio
from urllib.parse import urlencode

from robyn import Request

from bodyparser.transport.base import AbortCallback, DataCallback, HeaderCallback


class RobynRequestAdapter:
    __slots__ = ("_request",)

    def __init__(self, request: Request) -> None:
        self._request = request

    def for_each_header(self, callback: HeaderCallback) -> None:
        for name, values in self._request.headers.get_headers().items():
            for value in values if isinstance(values, list) else [values]:
                callback(name, value)

    def get_query(self) -> str:
        return urlencode(self._request.query_params.to_dict(), doseq=True)

    def get_method(self) -> str:
        return self._request.method

    def get_url(self) -> str:
        return self._request.url.path


class RobynResponseAdapter:
    """Pushes the buffered request body on the first ``on_data`` registration."""

    __slots__ = ("_body", "_delivered", "aborted")

    def __init__(self, request: Request) -> None:
        body = request.body
        self._body = body.encode("utf-8") if isinstance(body, str) else bytes(body or b"")
        self._delivered = False
        self.aborted = False

    def on_data(self, callback: DataCallback) -> None:
        if self._delivered:
            return
        self._delivered = True
        asyncio.get_running_loop().call_soon(callback, self._body, True)

    def on_aborted(self, callback: AbortCallback) -> None:
        return None


def adapt(request: Request) -> tuple[RobynRequestAdapter, RobynResponseAdapter]:
    """Build the transport pair for one Robyn request."""
    return RobynRequestAdapter(request), RobynResponseAdapter(request)
