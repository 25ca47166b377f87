"""Core models for request parsing and upload storage."""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bodyparser.core.settings import settings as st


class BodyStrategy(StrEnum):
    """Body decoding strategy selected from the declared content type."""

    FORM = "form"
    JSON = "json"
    NONE = "none"


class SkipReason(StrEnum):
    """Why a file part was not written to storage."""

    DECLINED = "declined"
    EXISTS = "exists"
    STORAGE_ERROR = "storage_error"


# -----------------------------------------------------------------------------
# Tokenizer events
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FormField:
    """A simple form field emitted by the tokenizer."""

    name: str
    value: str
    truncated: bool = False


@dataclass(slots=True)
class FilePartDescriptor:
    """One file part of a multipart body.

    ``byte_source`` is single-pass and unbuffered: it must be consumed or
    drained before the tokenizer can move on to the next part.
    """

    field_name: str
    filename: str
    encoding: str
    mime_type: str
    byte_source: AsyncIterator[bytes] = field(repr=False)
    truncated: bool = False

    async def drain(self) -> None:
        """Discard whatever is left of the part."""
        async for _ in self.byte_source:
            pass


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StoragePolicy:
    """Resolved per-file storage decision."""

    handle: bool
    tmp_root: str
    subfolder: str
    final_name: str


@dataclass(frozen=True, slots=True)
class Written:
    field_name: str
    path: str
    mimetype: str


@dataclass(frozen=True, slots=True)
class Skipped:
    field_name: str
    reason: SkipReason
    destination: str | None = None


FileOutcome = Written | Skipped

HookFn = Callable[[FilePartDescriptor], Any]


# -----------------------------------------------------------------------------
# Options
# -----------------------------------------------------------------------------


class _CamelModel(BaseModel):
    """Accepts both snake_case names and the camelCase option names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, arbitrary_types_allowed=True)


class Limits(_CamelModel):
    """Tokenizer and materializer limits. Size ceilings of 0 are disabled."""

    max_field_name_size: int = Field(default_factory=lambda: st.MAX_FIELD_NAME_SIZE, ge=0)
    max_field_size: int = Field(default_factory=lambda: st.MAX_FIELD_SIZE, ge=0)
    max_fields: int | None = Field(default_factory=lambda: st.MAX_FIELDS)
    max_file_size: int = Field(default_factory=lambda: st.MAX_FILE_SIZE, ge=0)
    max_files: int | None = Field(default_factory=lambda: st.MAX_FILES)
    max_parts: int | None = Field(default_factory=lambda: st.MAX_PARTS)
    max_body_size: int | None = Field(default_factory=lambda: st.MAX_BODY_SIZE)

    @property
    def buffer_ceiling(self) -> int:
        """Ceiling for whole-buffer decoding paths."""
        return self.max_field_size if self.max_body_size is None else self.max_body_size


class BodyOptions(_CamelModel):
    """Tokenizer tuning."""

    high_water_mark: int = Field(default_factory=lambda: st.HIGH_WATER_MARK, gt=0)
    file_hwm: int = Field(default_factory=lambda: st.FILE_HWM, gt=0)
    default_charset: str = Field(default_factory=lambda: st.DEFAULT_CHARSET)
    preserve_path: bool = Field(default_factory=lambda: st.PRESERVE_PATH)
    limits: Limits = Field(default_factory=Limits)


class CustomBodyOptions(_CamelModel):
    """Per-file policy hooks: a static value or a (possibly async) callable."""

    handle: bool | HookFn | None = None
    tmp_dir: str | Path | HookFn | None = None
    folder: str | Path | HookFn | None = None
    save_as: str | HookFn | None = None


class ParseOptions(_CamelModel):
    """Selects what to extract from a request and how to store uploads."""

    namespace: str | None = None
    headers: bool = False
    body: bool = False
    query: bool = False
    path: bool = False
    method: bool = False
    body_options: BodyOptions = Field(default_factory=BodyOptions)
    custom_body_options: CustomBodyOptions = Field(default_factory=CustomBodyOptions)
    diagnostics: Callable[[FileOutcome], None] | None = None


# -----------------------------------------------------------------------------
# Result
# -----------------------------------------------------------------------------


class FileRecord(BaseModel):
    """Where a file part was stored."""

    model_config = ConfigDict(frozen=True)

    path: str
    mimetype: str


class BodyPayload(BaseModel):
    """Decoded body: simple fields and stored files live in disjoint subtrees."""

    model_config = ConfigDict(frozen=True)

    fields: Any = None
    files: dict[str, Any] | None = None


class ParsedRequest(BaseModel):
    """Normalized request, built once per parse."""

    model_config = ConfigDict(frozen=True)

    headers: dict[str, str | list[str]] | None = None
    query: dict[str, str | list[str]] | None = None
    method: str | None = None
    path: str | None = None
    body: BodyPayload | None = None
