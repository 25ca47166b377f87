"""Tests for form decoding into fields and stored files."""

from pathlib import Path

import pytest

from bodyparser.core.errors import FilesLimitError, StreamError
from bodyparser.models.core import (
    BodyOptions,
    BodyPayload,
    CustomBodyOptions,
    FileRecord,
    Limits,
    ParseOptions,
    SkipReason,
    Skipped,
    Written,
)
from bodyparser.parsing.form import FormDecoder, set_path

URLENCODED = "application/x-www-form-urlencoded"


# -----------------------------------------------------------------------------
# set_path
# -----------------------------------------------------------------------------


class TestSetPath:
    """Tests for nested path assignment."""

    def test_plain_key(self) -> None:
        target: dict = {}
        set_path(target, "name", "foo")
        assert target == {"name": "foo"}

    def test_dotted_and_bracketed_paths(self) -> None:
        """Verify both notations land in the same nested mapping."""
        target: dict = {}
        set_path(target, "user.name", "ann")
        set_path(target, "user[age]", "30")
        assert target == {"user": {"name": "ann", "age": "30"}}

    def test_last_write_wins(self) -> None:
        target: dict = {}
        set_path(target, "a", "1")
        set_path(target, "a", "2")
        assert target == {"a": "2"}

    def test_scalar_replaced_by_mapping(self) -> None:
        target: dict = {"a": "scalar"}
        set_path(target, "a.b", "1")
        assert target == {"a": {"b": "1"}}


# -----------------------------------------------------------------------------
# FormDecoder
# -----------------------------------------------------------------------------


class TestFormDecoder:
    """Tests for FormDecoder.decode."""

    async def test_urlencoded_fields(self, make_stream, upload_root: Path) -> None:
        stream, _ = make_stream(b"name=foo&user.age=3")
        payload = await FormDecoder(ParseOptions(), str(upload_root)).decode(stream, URLENCODED)
        assert payload == BodyPayload(fields={"name": "foo", "user": {"age": "3"}})

    async def test_empty_form(self, make_stream, upload_root: Path) -> None:
        stream, _ = make_stream()
        payload = await FormDecoder(ParseOptions(), str(upload_root)).decode(stream, URLENCODED)
        assert payload == BodyPayload()

    async def test_multipart_fields_and_files(self, make_stream, multipart, upload_root: Path) -> None:
        """Verify fields and stored files land in separate subtrees."""
        body = multipart.body(
            multipart.field("name", "foo"),
            multipart.file("avatar", "me.png", b"\x89PNG", content_type="image/png"),
        )
        stream, _ = make_stream(*multipart.split(body, 32))

        payload = await FormDecoder(ParseOptions(), str(upload_root)).decode(stream, multipart.content_type)

        stored = upload_root / "me.png"
        assert payload.fields == {"name": "foo"}
        assert payload.files == {"avatar": FileRecord(path=str(stored), mimetype="image/png")}
        assert stored.read_bytes() == b"\x89PNG"

    async def test_declined_file_drained(self, make_stream, multipart, upload_root: Path) -> None:
        """Verify a declined file is consumed and not recorded."""
        outcomes: list = []
        options = ParseOptions(custom_body_options=CustomBodyOptions(handle=False), diagnostics=outcomes.append)
        body = multipart.body(multipart.file("f", "a.txt", b"x" * 500), multipart.field("after", "1"))
        stream, _ = make_stream(*multipart.split(body, 50))

        payload = await FormDecoder(options, str(upload_root)).decode(stream, multipart.content_type)

        assert payload == BodyPayload(fields={"after": "1"})
        assert outcomes == [Skipped("f", SkipReason.DECLINED)]
        assert list(upload_root.iterdir()) == []

    async def test_diagnostics_report_written(self, make_stream, multipart, upload_root: Path) -> None:
        outcomes: list = []
        stream, _ = make_stream(multipart.body(multipart.file("f", "a.txt", b"data")))

        await FormDecoder(ParseOptions(diagnostics=outcomes.append), str(upload_root)).decode(
            stream, multipart.content_type
        )

        assert outcomes == [Written("f", str(upload_root / "a.txt"), "text/plain")]

    async def test_nested_file_field_names(self, make_stream, multipart, upload_root: Path) -> None:
        body = multipart.body(multipart.file("docs[cv]", "cv.pdf", b"%PDF", content_type="application/pdf"))
        stream, _ = make_stream(body)

        payload = await FormDecoder(ParseOptions(), str(upload_root)).decode(stream, multipart.content_type)

        assert payload.files == {"docs": {"cv": FileRecord(path=str(upload_root / "cv.pdf"), mimetype="application/pdf")}}

    async def test_files_limit_rejects(self, make_stream, multipart, upload_root: Path) -> None:
        """Verify the over-limit file is never written."""
        options = ParseOptions(body_options=BodyOptions(limits=Limits(max_files=1)))
        body = multipart.body(multipart.file("a", "1.txt", b"one"), multipart.file("b", "2.txt", b"two"))
        stream, _ = make_stream(body)

        with pytest.raises(FilesLimitError):
            await FormDecoder(options, str(upload_root)).decode(stream, multipart.content_type)

        assert not (upload_root / "2.txt").exists()

    async def test_stream_failure_rejects(self, make_stream, upload_root: Path) -> None:
        stream, _ = make_stream(fail_with=ConnectionResetError("reset"))
        with pytest.raises(StreamError):
            await FormDecoder(ParseOptions(), str(upload_root)).decode(stream, URLENCODED)
