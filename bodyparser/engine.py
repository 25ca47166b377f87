"""Parse engine: metadata extraction plus streaming body decoding."""

import os
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import orjson
from asgi_correlation_id import correlation_id

from bodyparser.core.errors import BodyParserError
from bodyparser.core.governor import AbortSignal
from bodyparser.core.logger import LogIcon, logger
from bodyparser.core.settings import settings as st
from bodyparser.models.core import BodyPayload, BodyStrategy, ParsedRequest, ParseOptions
from bodyparser.parsing.dispatcher import resolve_content_type, select_strategy
from bodyparser.parsing.form import FormDecoder
from bodyparser.parsing.metadata import MultiValueMap, extract_headers, extract_method, extract_path, parse_query
from bodyparser.streams.bridge import ResponseStream
from bodyparser.streams.materializer import drain
from bodyparser.transport.base import TransportRequest, TransportResponse


class BodyParser:
    """Parse engine bound to a default storage root resolved once at construction."""

    def __init__(self, tmp_dir: str | Path | None = None, namespace: str | None = None) -> None:
        self.tmp_dir = os.fspath(tmp_dir if tmp_dir is not None else st.UPLOAD_TMP_DIR)
        self.namespace = namespace if namespace is not None else st.UPLOAD_NAMESPACE

    def __repr__(self) -> str:
        return f"BodyParser(tmp_dir={self.tmp_dir!r}, namespace={self.namespace!r})"

    def _options(self, options: ParseOptions | Mapping[str, Any] | None) -> ParseOptions:
        if options is None:
            options = ParseOptions()
        elif not isinstance(options, ParseOptions):
            options = ParseOptions.model_validate(options)
        if options.namespace is None and self.namespace:
            options = options.model_copy(update={"namespace": self.namespace})
        return options

    async def parse(
        self,
        request: TransportRequest,
        response: TransportResponse,
        options: ParseOptions | Mapping[str, Any] | None = None,
    ) -> ParsedRequest:
        """Normalize one request.

        Raises ``BodyParserError`` subclasses for size, limit and stream
        failures. Any other failure while decoding the body is logged and
        leaves ``body`` unset.
        """
        options = self._options(options)
        abort = AbortSignal.attach(response)
        if abort.aborted:
            return ParsedRequest()

        token = None if correlation_id.get() else correlation_id.set(uuid.uuid4().hex)
        try:
            return await self._parse(request, response, options, abort)
        finally:
            if token is not None:
                correlation_id.reset(token)

    async def _parse(
        self,
        request: TransportRequest,
        response: TransportResponse,
        options: ParseOptions,
        abort: AbortSignal,
    ) -> ParsedRequest:
        headers: MultiValueMap | None = None
        if options.headers or options.body:
            headers = extract_headers(request)

        result: dict[str, Any] = {"headers": headers}
        if options.query:
            result["query"] = parse_query(request.get_query())
        if options.method:
            result["method"] = extract_method(request)
        if options.path:
            result["path"] = extract_path(request)

        if options.body:
            try:
                result["body"] = await self._decode_body(headers or {}, response, options, abort)
            except BodyParserError:
                raise
            except Exception as ex:
                logger.error("Body decoding failed", icon=LogIcon.ERROR, error=repr(ex))

        return ParsedRequest(**result)

    async def _decode_body(
        self,
        headers: MultiValueMap,
        response: TransportResponse,
        options: ParseOptions,
        abort: AbortSignal,
    ) -> BodyPayload | None:
        content_type = resolve_content_type(headers.get("content-type"))
        strategy = select_strategy(content_type)
        logger.info("Decoding body", icon=LogIcon.PROCESSING, strategy=strategy, content_type=content_type)

        match strategy:
            case BodyStrategy.FORM:
                stream = ResponseStream(response, abort)
                return await FormDecoder(options, self.tmp_dir).decode(stream, content_type)
            case BodyStrategy.JSON:
                stream = ResponseStream(response, abort)
                raw = await drain(stream, options.body_options.limits.buffer_ceiling)
                return BodyPayload(fields=orjson.loads(raw))
            case _:
                return None


default_parser = BodyParser()


async def parse_data(
    request: TransportRequest,
    response: TransportResponse,
    options: ParseOptions | Mapping[str, Any] | None = None,
) -> ParsedRequest:
    """Parse with the module default engine."""
    return await default_parser.parse(request, response, options)
