"""Test fixtures for bodyparser unit tests."""

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from bodyparser.core.lifespan import State
from bodyparser.engine import BodyParser
from bodyparser.streams.bridge import ResponseStream

BOUNDARY = "----bodyparserboundary"
MULTIPART_CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


# -----------------------------------------------------------------------------
# Mock transport
# -----------------------------------------------------------------------------


@dataclass
class MockTransportRequest:
    """Request side of a push transport."""

    headers: list[tuple[str, str]] = field(default_factory=list)
    query: str = ""
    method: str = "POST"
    url: str = "/"

    def for_each_header(self, callback) -> None:
        for name, value in self.headers:
            callback(name, value)

    def get_query(self) -> str:
        return self.query

    def get_method(self) -> str:
        return self.method

    def get_url(self) -> str:
        return self.url


class MockTransportResponse:
    """Lazy push source: delivers one queued chunk per ``on_data`` registration.

    With ``complete=False`` the last chunk is not flagged as final, and with
    ``abort_when_drained`` the client aborts once every chunk was delivered.
    ``abort_after_last`` aborts right after the final chunk was pushed.
    """

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        *,
        complete: bool = True,
        abort_when_drained: bool = False,
        abort_after_last: bool = False,
        fail_with: Exception | None = None,
    ) -> None:
        self._chunks = deque(chunks)
        self._complete = complete
        self._abort_when_drained = abort_when_drained
        self._abort_after_last = abort_after_last
        self._fail_with = fail_with
        self._abort_callbacks: list = []
        self.registrations = 0
        self.aborted = False

    def on_data(self, callback) -> None:
        self.registrations += 1
        if self._fail_with is not None:
            raise self._fail_with
        loop = asyncio.get_running_loop()
        if self._chunks:
            chunk = self._chunks.popleft()
            is_last = self._complete and not self._chunks
            loop.call_soon(callback, chunk, is_last)
            if is_last and self._abort_after_last:
                loop.call_soon(self.abort)
        elif self._complete:
            loop.call_soon(callback, b"", True)
        elif self._abort_when_drained:
            loop.call_soon(self.abort)

    def on_aborted(self, callback) -> None:
        self._abort_callbacks.append(callback)

    def abort(self) -> None:
        self.aborted = True
        for callback in self._abort_callbacks:
            callback()


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request."""

    _data: dict[str, list[str]] = field(default_factory=dict)

    def get_headers(self) -> dict[str, list[str]]:
        return self._data


@dataclass
class MockQueryParams:
    """Mock QueryParams object for Robyn Request."""

    _data: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, list[str]]:
        return self._data


@dataclass
class MockUrl:
    path: str = "/"


@dataclass
class MockRobynRequest:
    """Mock Request object for Robyn."""

    body: str | bytes = b""
    headers: MockHeaders = field(default_factory=MockHeaders)
    query_params: MockQueryParams = field(default_factory=MockQueryParams)
    method: str = "POST"
    url: MockUrl = field(default_factory=MockUrl)


# -----------------------------------------------------------------------------
# Body builders
# -----------------------------------------------------------------------------


class Multipart:
    """Builds multipart/form-data bodies with a fixed boundary."""

    boundary = BOUNDARY
    content_type = MULTIPART_CONTENT_TYPE

    @staticmethod
    def field(name: str, value: str) -> bytes:
        return f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()

    @staticmethod
    def file(name: str, filename: str, data: bytes, content_type: str = "text/plain") -> bytes:
        head = (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        )
        return head.encode() + data + b"\r\n"

    @staticmethod
    def body(*parts: bytes) -> bytes:
        return b"".join(parts) + f"--{BOUNDARY}--\r\n".encode()

    @staticmethod
    def split(data: bytes, size: int) -> list[bytes]:
        """Cut data into transport-sized chunks."""
        return [data[i : i + size] for i in range(0, len(data), size)]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def multipart() -> type[Multipart]:
    return Multipart


@pytest.fixture
def make_response():
    """Factory fixture for mock push sources."""

    def _make(*chunks: bytes, **kwargs) -> MockTransportResponse:
        return MockTransportResponse(chunks, **kwargs)

    return _make


@pytest.fixture
def make_request():
    """Factory fixture for transport requests with a content type."""

    def _make(content_type: str | None = None, **kwargs) -> MockTransportRequest:
        headers = list(kwargs.pop("headers", []))
        if content_type is not None:
            headers.append(("Content-Type", content_type))
        return MockTransportRequest(headers=headers, **kwargs)

    return _make


@pytest.fixture
def make_robyn_request():
    """Factory fixture to create mock Robyn requests."""

    def _make(
        body: str | bytes = b"",
        headers: dict[str, list[str]] | None = None,
        query: dict[str, list[str]] | None = None,
        method: str = "POST",
        path: str = "/",
    ) -> MockRobynRequest:
        return MockRobynRequest(
            body=body,
            headers=MockHeaders(headers or {}),
            query_params=MockQueryParams(query or {}),
            method=method,
            url=MockUrl(path),
        )

    return _make


@pytest.fixture
def make_stream():
    """Factory fixture for a ``ResponseStream`` over queued chunks."""

    def _make(*chunks: bytes, **kwargs) -> tuple[ResponseStream, MockTransportResponse]:
        response = MockTransportResponse(chunks, **kwargs)
        return ResponseStream(response), response

    return _make


@pytest.fixture
def upload_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def parser(upload_root: Path) -> BodyParser:
    """Engine storing uploads under a per-test directory."""
    return BodyParser(tmp_dir=upload_root, namespace="")


@pytest.fixture
def test_state() -> State:
    return State()


@pytest.fixture
def global_dependencies(test_state: State) -> dict:
    yield {"state": test_state}
    test_state.clear()
