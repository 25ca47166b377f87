"""Drain a byte stream into one contiguous buffer."""

from beartype import beartype

from bodyparser.core.errors import MaxSizeExceededError, StreamError
from bodyparser.core.logger import LogIcon, logger
from bodyparser.streams.bridge import ResponseStream


@beartype
async def drain(stream: ResponseStream, max_size: int = 0) -> bytes:
    """Read the whole stream, destroying it once it grows past ``max_size``.

    A ``max_size`` of 0 disables the ceiling.
    """
    chunks: list[bytes] = []
    length = 0

    async for chunk in stream:
        chunks.append(chunk)
        length += len(chunk)
        if max_size and length > max_size:
            chunks.clear()
            stream.destroy()
            logger.warning("Body exceeds size ceiling", icon=LogIcon.EXHAUSTION, max_size=max_size)
            raise MaxSizeExceededError(max_size)

    if stream.aborted and not stream.ended:
        raise StreamError("Request aborted before the body was complete")

    match len(chunks):
        case 0:
            return b""
        case 1:
            return chunks[0]
        case _:
            return b"".join(chunks)
