"""Per-file storage policy resolution and durable writes."""

import inspect
import os
from typing import Any

import aiofiles
import aiofiles.os

from bodyparser.core.logger import LogIcon, logger
from bodyparser.models.core import (
    CustomBodyOptions,
    FileOutcome,
    FilePartDescriptor,
    SkipReason,
    Skipped,
    StoragePolicy,
    Written,
)


async def _resolve_hook(hook: Any, descriptor: FilePartDescriptor, default: Any, slot: str) -> Any:
    """Evaluate a static value or a (possibly async) callable once.

    A raising hook, or one returning None, falls back to the default.
    """
    if hook is None:
        return default
    if not callable(hook):
        return hook
    try:
        value = hook(descriptor)
        if inspect.isawaitable(value):
            value = await value
    except Exception as ex:
        logger.warning(
            "Policy hook failed, using default",
            icon=LogIcon.WARNING,
            hook=slot,
            field=descriptor.field_name,
            error=repr(ex),
        )
        return default
    return default if value is None else value


async def resolve_policy(
    descriptor: FilePartDescriptor,
    hooks: CustomBodyOptions,
    tmp_root: str,
    namespace: str | None = None,
) -> StoragePolicy:
    """Resolve tmp_dir, folder, handle and save_as in that order."""
    root = await _resolve_hook(hooks.tmp_dir, descriptor, tmp_root, "tmp_dir")
    subfolder = await _resolve_hook(hooks.folder, descriptor, "", "folder")
    handle = await _resolve_hook(hooks.handle, descriptor, True, "handle")
    final_name = await _resolve_hook(hooks.save_as, descriptor, descriptor.filename, "save_as")

    subfolder = os.fspath(subfolder)
    if namespace:
        subfolder = os.path.join(namespace, subfolder) if subfolder else namespace

    return StoragePolicy(
        handle=bool(handle),
        tmp_root=os.fspath(root),
        subfolder=subfolder,
        final_name=os.fspath(final_name),
    )


async def _exists(path: str) -> bool:
    return await aiofiles.os.path.isfile(path) or await aiofiles.os.path.isdir(path)


async def _discard(path: str) -> None:
    try:
        await aiofiles.os.remove(path)
    except OSError as ex:
        logger.warning("Could not remove partial upload", icon=LogIcon.FILE, path=path, error=repr(ex))


async def store_file_part(descriptor: FilePartDescriptor, policy: StoragePolicy) -> FileOutcome:
    """Stream a file part to ``tmp_root/subfolder/final_name``.

    Never overwrites: an existing file or directory, or a creation race lost
    to another writer, yields ``Skipped``. Storage errors are recovered as
    ``Skipped`` too; anything else (stream or limit errors) removes the
    partial file and propagates.
    """
    if not policy.handle:
        return Skipped(descriptor.field_name, SkipReason.DECLINED)

    destination = os.path.join(policy.tmp_root, policy.subfolder, policy.final_name)
    try:
        if await _exists(destination):
            return Skipped(descriptor.field_name, SkipReason.EXISTS, destination)

        parent = os.path.dirname(destination)
        if parent:
            await aiofiles.os.makedirs(parent, exist_ok=True)

        async with aiofiles.open(destination, "xb") as handle:
            try:
                async for chunk in descriptor.byte_source:
                    await handle.write(chunk)
            except BaseException:
                await handle.close()
                await _discard(destination)
                raise
    except FileExistsError:
        return Skipped(descriptor.field_name, SkipReason.EXISTS, destination)
    except OSError as ex:
        logger.warning(
            "Could not store file part",
            icon=LogIcon.FILE,
            field=descriptor.field_name,
            path=destination,
            error=repr(ex),
        )
        return Skipped(descriptor.field_name, SkipReason.STORAGE_ERROR, destination)

    return Written(descriptor.field_name, destination, descriptor.mime_type)
