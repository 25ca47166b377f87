"""Error taxonomy for body decoding.

Only failures of the streaming machinery itself derive from
``BodyParserError`` and reach the caller. Storage and JSON failures are
recovered where they happen.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Distinct rejection kinds surfaced by a parse."""

    MAX_SIZE_EXCEEDED = "max_size_exceeded"
    STREAM_ERROR = "stream_error"
    PARTS_LIMIT = "parts_limit"
    FIELDS_LIMIT = "fields_limit"
    FILES_LIMIT = "files_limit"
    TOKENIZER_ERROR = "tokenizer_error"


class BodyParserError(Exception):
    """Base class for caller-visible parse rejections."""

    kind: ErrorKind

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind.value)


class MaxSizeExceededError(BodyParserError):
    """Whole-buffer body grew past its ceiling."""

    kind = ErrorKind.MAX_SIZE_EXCEEDED

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        super().__init__(f"Body exceeds maximum size of {max_size} bytes")


class StreamError(BodyParserError):
    """Upstream byte delivery failed or was aborted mid-body."""

    kind = ErrorKind.STREAM_ERROR


class StreamDestroyedError(StreamError):
    """Read attempted on a stream that was destroyed."""


class PartsLimitError(BodyParserError):
    kind = ErrorKind.PARTS_LIMIT


class FieldsLimitError(BodyParserError):
    kind = ErrorKind.FIELDS_LIMIT


class FilesLimitError(BodyParserError):
    kind = ErrorKind.FILES_LIMIT


class TokenizerError(BodyParserError):
    """Malformed body or internal tokenizer failure."""

    kind = ErrorKind.TOKENIZER_ERROR
