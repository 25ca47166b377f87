"""Tokenized form decoding: fields into a nested mapping, files onto disk."""

import asyncio
import contextlib
import re
from typing import Any

from beartype import beartype

from bodyparser.core.governor import Settlement
from bodyparser.core.logger import LogIcon, logger
from bodyparser.models.core import (
    BodyPayload,
    FileOutcome,
    FilePartDescriptor,
    FileRecord,
    FormField,
    ParseOptions,
    Written,
)
from bodyparser.parsing.storage import resolve_policy, store_file_part
from bodyparser.parsing.tokenizer import FormTokenizer
from bodyparser.streams.bridge import ResponseStream

_PATH_SEGMENT = re.compile(r"[^.\[\]]+")


@beartype
def set_path(target: dict[str, Any], path: str, value: Any) -> None:
    """Assign value at a dotted / bracketed path, creating nested mappings.

    ``user.name`` and ``user[name]`` both land in ``target["user"]["name"]``.
    Later writes replace earlier ones, including non-mapping intermediates.
    """
    keys = _PATH_SEGMENT.findall(path) or [path]
    node = target
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = node[key] = {}
        node = child
    node[keys[-1]] = value


class FormDecoder:
    """Decodes urlencoded and multipart bodies pulled from a ``ResponseStream``."""

    def __init__(self, options: ParseOptions, tmp_root: str) -> None:
        self.options = options
        self.tmp_root = tmp_root

    async def decode(self, stream: ResponseStream, content_type: str) -> BodyPayload:
        settlement: Settlement[BodyPayload] = Settlement()
        stream.on_error(settlement.fail)

        task = asyncio.create_task(self._run(stream, content_type, settlement))
        try:
            return await settlement.wait()
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _run(self, stream: ResponseStream, content_type: str, settlement: Settlement[BodyPayload]) -> None:
        try:
            payload = await self._consume(stream, content_type)
        except Exception as ex:
            settlement.fail(ex)
        else:
            settlement.settle(payload)

    async def _consume(self, stream: ResponseStream, content_type: str) -> BodyPayload:
        fields: dict[str, Any] = {}
        files: dict[str, Any] = {}
        tokenizer = FormTokenizer(content_type, stream, self.options.body_options)

        async for event in tokenizer:
            match event:
                case FormField(name=name, value=value):
                    set_path(fields, name, value)
                case FilePartDescriptor():
                    outcome = await self._handle_file(event)
                    if isinstance(outcome, Written):
                        set_path(files, event.field_name, FileRecord(path=outcome.path, mimetype=outcome.mimetype))

        logger.info("Form decoded", icon=LogIcon.COMPLETE, fields=len(fields), files=len(files))
        return BodyPayload(fields=fields or None, files=files or None)

    async def _handle_file(self, descriptor: FilePartDescriptor) -> FileOutcome:
        hooks = self.options.custom_body_options
        policy = await resolve_policy(descriptor, hooks, self.tmp_root, self.options.namespace)
        outcome = await store_file_part(descriptor, policy)

        if isinstance(outcome, Written):
            logger.info("File stored", icon=LogIcon.UPLOAD, field=descriptor.field_name, path=outcome.path)
        else:
            logger.info("File skipped", icon=LogIcon.SKIP, field=descriptor.field_name, reason=outcome.reason)
            await descriptor.drain()

        if self.options.diagnostics is not None:
            self.options.diagnostics(outcome)
        return outcome
