"""Tests for log processors."""

import pytest
from asgi_correlation_id import correlation_id

from bodyparser.core.logger import (
    BusinessRulesProcessor,
    LoggerConfig,
    LoggerError,
    LogIcon,
    add_correlation_id,
    build_processors,
    dev_pipeline_renderer,
)


class TestBusinessRulesProcessor:
    """Tests for event normalization."""

    def test_uppercases_and_truncates(self) -> None:
        processor = BusinessRulesProcessor(debug=False, max_event_length=5)
        result = processor(None, "info", {"event": "stored file", "icon": LogIcon.FILE})
        assert result == {"event": "STORE"}

    def test_icon_rendered_in_debug(self) -> None:
        processor = BusinessRulesProcessor(debug=True)
        result = processor(None, "info", {"event": "skipped", "icon": LogIcon.SKIP})
        assert result["event"] == f"{LogIcon.SKIP.value} SKIPPED"

    def test_unknown_icon_rejected(self) -> None:
        processor = BusinessRulesProcessor(debug=True)
        with pytest.raises(LoggerError, match="Unknown log icon"):
            processor(None, "info", {"event": "x", "icon": "not-an-icon"})


def test_dev_renderer_layout() -> None:
    line = dev_pipeline_renderer(
        None,
        "info",
        {"timestamp": "t", "level": "info", "event": "EVENT", "field": "doc", "filename": "form.py", "lineno": 7},
    )
    assert line == "t | INFO | EVENT | field=doc | form.py:7"


def test_correlation_id_added_when_bound() -> None:
    assert add_correlation_id(None, "info", {}) == {}
    token = correlation_id.set("abc")
    try:
        assert add_correlation_id(None, "info", {}) == {"correlation_id": "abc"}
    finally:
        correlation_id.reset(token)


def test_renderer_depends_on_debug() -> None:
    assert build_processors(LoggerConfig(debug=True))[-1] is dev_pipeline_renderer
    assert build_processors(LoggerConfig(debug=False))[-1] is not dev_pipeline_renderer
