"""Pull-driven form tokenizer over python-multipart.

python-multipart pushes callbacks synchronously from ``write``. The callbacks
only queue tokens; consumers pull tokens back out and the tokenizer feeds the
parser one ``high_water_mark`` slice at a time, only when the queue is empty.
At most one slice worth of file data is ever held in memory.
"""

from collections import deque
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any
from urllib.parse import unquote_to_bytes

from python_multipart import MultipartParser, QuerystringParser
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import QuerystringState, parse_options_header

from bodyparser.core.errors import (
    BodyParserError,
    FieldsLimitError,
    FilesLimitError,
    PartsLimitError,
    StreamError,
    TokenizerError,
)
from bodyparser.core.logger import LogIcon, logger
from bodyparser.models.core import BodyOptions, FilePartDescriptor, FormField

DEFAULT_FILE_MIMETYPE = "text/plain"
DEFAULT_TRANSFER_ENCODING = "7bit"


class TokenKind(StrEnum):
    FIELD = "field"
    FILE_BEGIN = "file_begin"
    FILE_DATA = "file_data"
    FILE_END = "file_end"
    ERROR = "error"
    END = "end"


class PartKind(StrEnum):
    FIELD = "field"
    FILE = "file"
    SKIP = "skip"


Token = tuple[TokenKind, Any]


def _safe_decode(value: bytes, charset: str, errors: str = "strict") -> str:
    try:
        return value.decode(charset, errors)
    except (UnicodeDecodeError, LookupError):
        return value.decode("latin-1")


def _truncate(value: str, limit: int, charset: str) -> tuple[str, bool]:
    """Cut value to at most limit encoded bytes. A limit of 0 keeps it whole."""
    if not limit:
        return value, False
    encoded = value.encode(charset, errors="replace")
    if len(encoded) <= limit:
        return value, False
    return encoded[:limit].decode(charset, errors="ignore"), True


def _basename(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    return "" if name in (".", "..") else name


class FormTokenizer:
    """Yields ``FormField`` and ``FilePartDescriptor`` events from a byte stream."""

    def __init__(self, content_type: str, source: AsyncIterator[bytes], options: BodyOptions) -> None:
        self._stream = source
        self._source = aiter(source)
        self._options = options
        self._limits = options.limits

        self._pending: deque[Token] = deque()
        self._backlog = b""
        self._offset = 0
        self._exhausted = False
        self._halted = False
        self._ended = False

        self._parts = 0
        self._fields = 0
        self._files = 0
        self._part_id = 0
        self._current: FilePartDescriptor | None = None
        self._current_id = 0

        ctype, params = parse_options_header(content_type)
        charset = params.get(b"charset")
        self._charset = charset.decode("latin-1") if charset else options.default_charset

        self._reset_part()
        self._reset_urlencoded_field()

        if ctype.lower() == b"multipart/form-data":
            boundary = params.get(b"boundary")
            if not boundary:
                raise TokenizerError("Multipart body declared without a boundary")
            self._parser: MultipartParser | QuerystringParser = MultipartParser(
                boundary,
                callbacks={
                    "on_part_begin": self._on_part_begin,
                    "on_part_data": self._on_part_data,
                    "on_part_end": self._on_part_end,
                    "on_header_field": self._on_header_field,
                    "on_header_value": self._on_header_value,
                    "on_header_end": self._on_header_end,
                    "on_headers_finished": self._on_headers_finished,
                    "on_end": self._on_end,
                },
            )
        else:
            self._parser = QuerystringParser(
                callbacks={
                    "on_field_start": self._reset_urlencoded_field,
                    "on_field_name": self._on_field_name,
                    "on_field_data": self._on_field_data,
                    "on_field_end": self._on_field_end,
                    "on_end": self._on_end,
                },
            )

    def __aiter__(self) -> AsyncIterator[FormField | FilePartDescriptor]:
        return self._events()

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    async def _events(self) -> AsyncIterator[FormField | FilePartDescriptor]:
        while True:
            await self._skip_current()
            kind, payload = await self._next_token()
            match kind:
                case TokenKind.FIELD:
                    yield payload
                case TokenKind.FILE_BEGIN:
                    yield self._open_file(*payload)
                case TokenKind.ERROR:
                    raise payload
                case TokenKind.END:
                    return

    def _open_file(self, field_name: str, filename: str, encoding: str, mime_type: str) -> FilePartDescriptor:
        self._part_id += 1
        descriptor = FilePartDescriptor(
            field_name=field_name,
            filename=filename,
            encoding=encoding,
            mime_type=mime_type,
            byte_source=self._file_chunks(self._part_id),
        )
        self._current = descriptor
        self._current_id = self._part_id
        return descriptor

    async def _file_chunks(self, part_id: int) -> AsyncIterator[bytes]:
        received = 0
        limit = self._limits.max_file_size
        step = self._options.file_hwm

        while self._current is not None and self._current_id == part_id:
            kind, payload = await self._next_token()
            match kind:
                case TokenKind.FILE_DATA:
                    if limit and received + len(payload) > limit:
                        payload = payload[: max(limit - received, 0)]
                        self._mark_truncated()
                    received += len(payload)
                    for offset in range(0, len(payload), step):
                        yield payload[offset : offset + step]
                case TokenKind.FILE_END:
                    self._current = None
                case TokenKind.ERROR:
                    self._current = None
                    raise payload
                case _:
                    self._pending.appendleft((kind, payload))
                    self._current = None

    async def _skip_current(self) -> None:
        """Discard the rest of a file part the consumer walked away from."""
        while self._current is not None:
            kind, payload = await self._next_token()
            match kind:
                case TokenKind.FILE_DATA:
                    continue
                case TokenKind.FILE_END:
                    self._current = None
                case TokenKind.ERROR:
                    self._current = None
                    raise payload
                case _:
                    self._pending.appendleft((kind, payload))
                    self._current = None

    def _mark_truncated(self) -> None:
        if self._current is None or self._current.truncated:
            return
        self._current.truncated = True
        logger.warning(
            "File part truncated at size limit",
            icon=LogIcon.EXHAUSTION,
            field=self._current.field_name,
            max_file_size=self._limits.max_file_size,
        )

    async def _next_token(self) -> Token:
        while not self._pending:
            if self._offset < len(self._backlog):
                self._write_next()
                continue
            if self._exhausted:
                return TokenKind.ERROR, TokenizerError("Read past the end of the body")
            try:
                self._backlog = await anext(self._source)
                self._offset = 0
            except StopAsyncIteration:
                self._finish()
        return self._pending.popleft()

    def _write_next(self) -> None:
        if self._halted:
            self._backlog, self._offset = b"", 0
            return
        end = self._offset + self._options.high_water_mark
        piece = self._backlog[self._offset : end]
        self._offset = end
        try:
            self._parser.write(piece)
        except FormParserError as ex:
            self._halt(TokenizerError(str(ex)))

    def _finish(self) -> None:
        self._exhausted = True
        if self._halted:
            return
        if getattr(self._stream, "aborted", False) and not getattr(self._stream, "ended", False):
            self._halt(StreamError("Request aborted before the body was complete"))
            return
        # A trailing name without "=" is never closed by the querystring parser
        if isinstance(self._parser, QuerystringParser) and self._parser.state == QuerystringState.FIELD_NAME:
            self._on_field_end()
        try:
            self._parser.finalize()
        except FormParserError as ex:
            self._halt(TokenizerError(str(ex)))
            return
        if not self._ended:
            self._halt(TokenizerError("Unexpected end of form"))

    # -------------------------------------------------------------------------
    # Parser callbacks
    # -------------------------------------------------------------------------

    def _emit(self, kind: TokenKind, payload: Any = None) -> None:
        if not self._halted:
            self._pending.append((kind, payload))

    def _halt(self, error: BodyParserError) -> None:
        if self._halted:
            return
        self._halted = True
        self._pending.append((TokenKind.ERROR, error))
        logger.warning("Tokenizer halted", icon=LogIcon.FORBIDDEN, kind=error.kind, reason=str(error))

    def _on_end(self) -> None:
        self._ended = True
        self._emit(TokenKind.END)

    def _count_field(self) -> bool:
        self._fields += 1
        if self._limits.max_fields is not None and self._fields > self._limits.max_fields:
            self._halt(FieldsLimitError(f"More than {self._limits.max_fields} fields"))
            return False
        return True

    # application/x-www-form-urlencoded

    def _reset_urlencoded_field(self) -> None:
        self._raw_name = bytearray()
        self._raw_value = bytearray()

    def _on_field_name(self, data: bytes, start: int, end: int) -> None:
        # Percent-escapes take three bytes, so keep three times the limit
        cap = self._limits.max_field_name_size * 3
        if not cap or len(self._raw_name) < cap:
            self._raw_name += data[start:end]

    def _on_field_data(self, data: bytes, start: int, end: int) -> None:
        cap = self._limits.max_field_size * 3
        if not cap or len(self._raw_value) < cap:
            self._raw_value += data[start:end]

    def _on_field_end(self) -> None:
        name = _safe_decode(unquote_to_bytes(bytes(self._raw_name).replace(b"+", b" ")), self._charset)
        value = _safe_decode(unquote_to_bytes(bytes(self._raw_value).replace(b"+", b" ")), self._charset)
        self._reset_urlencoded_field()
        if not name:
            return
        if self._count_field():
            name, _ = _truncate(name, self._limits.max_field_name_size, self._charset)
            value, truncated = _truncate(value, self._limits.max_field_size, self._charset)
            self._emit(TokenKind.FIELD, FormField(name=name, value=value, truncated=truncated))

    # multipart/form-data

    def _reset_part(self) -> None:
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._part_headers: dict[bytes, bytes] = {}
        self._part_kind = PartKind.SKIP
        self._field_name = ""
        self._field_charset = self._charset
        self._field_value = bytearray()
        self._field_truncated = False

    def _on_part_begin(self) -> None:
        self._reset_part()

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[bytes(self._header_field).strip().lower()] = bytes(self._header_value).strip()
        self._header_field = bytearray()
        self._header_value = bytearray()

    def _on_headers_finished(self) -> None:
        self._parts += 1
        if self._limits.max_parts is not None and self._parts > self._limits.max_parts:
            self._halt(PartsLimitError(f"More than {self._limits.max_parts} parts"))
            return

        _, disposition = parse_options_header(self._part_headers.get(b"content-disposition"))
        raw_name = disposition.get(b"name")
        if raw_name is None:
            logger.warning("Skipping multipart part without a name", icon=LogIcon.SKIP)
            return

        name, _ = _truncate(_safe_decode(raw_name, self._charset), self._limits.max_field_name_size, self._charset)
        content_type, content_options = parse_options_header(self._part_headers.get(b"content-type"))

        if b"filename" in disposition:
            self._files += 1
            if self._limits.max_files is not None and self._files > self._limits.max_files:
                self._halt(FilesLimitError(f"More than {self._limits.max_files} files"))
                return
            filename = _safe_decode(disposition[b"filename"], self._charset)
            if not self._options.preserve_path:
                filename = _basename(filename)
            encoding = self._part_headers.get(b"content-transfer-encoding", DEFAULT_TRANSFER_ENCODING.encode())
            mime_type = content_type.decode("latin-1").lower() or DEFAULT_FILE_MIMETYPE
            self._part_kind = PartKind.FILE
            self._emit(TokenKind.FILE_BEGIN, (name, filename, encoding.decode("latin-1").lower(), mime_type))
            return

        if self._count_field():
            self._part_kind = PartKind.FIELD
            self._field_name = name
            charset = content_options.get(b"charset")
            if charset:
                self._field_charset = charset.decode("latin-1")

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        match self._part_kind:
            case PartKind.FILE:
                self._emit(TokenKind.FILE_DATA, data[start:end])
            case PartKind.FIELD:
                limit = self._limits.max_field_size
                chunk = data[start:end]
                if limit and len(self._field_value) + len(chunk) > limit:
                    chunk = chunk[: max(limit - len(self._field_value), 0)]
                    self._field_truncated = True
                self._field_value += chunk

    def _on_part_end(self) -> None:
        match self._part_kind:
            case PartKind.FILE:
                self._emit(TokenKind.FILE_END)
            case PartKind.FIELD:
                # A cut at the size limit may split a multi-byte character
                errors = "ignore" if self._field_truncated else "strict"
                text = _safe_decode(bytes(self._field_value), self._field_charset, errors)
                field = FormField(name=self._field_name, value=text, truncated=self._field_truncated)
                self._emit(TokenKind.FIELD, field)
        self._part_kind = PartKind.SKIP
