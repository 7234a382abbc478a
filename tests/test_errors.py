"""Tests for the error code registry."""
from __future__ import annotations

import pytest

from traceview.errors import (
    ERROR_TEMPLATES,
    ConfigError,
    ErrorCode,
    MissingTimestampError,
    UnknownSpanError,
    ZoomActiveError,
    handle_exception,
    make_error,
)


class TestMakeError:
    def test_every_code_has_a_template(self) -> None:
        assert set(ERROR_TEMPLATES) == set(ErrorCode)

    def test_details_fill_the_template(self) -> None:
        err = make_error(ErrorCode.E301, "traces.json")

        assert err.message == "Trace file not found: traces.json"
        assert err.details is None
        assert str(err).startswith("TV-E301: Trace file not found")
        assert "Next step:" in str(err)

    def test_details_appended_without_placeholder(self) -> None:
        err = make_error(ErrorCode.E103, "window 10-20")

        assert err.message == "Zoom already active: window 10-20"
        assert err.details == "window 10-20"

    def test_placeholder_dropped_without_details(self) -> None:
        assert make_error(ErrorCode.E102).message == "Invalid zoom range"


class TestExceptions:
    def test_exception_carries_code(self) -> None:
        exc = MissingTimestampError("abc")

        assert exc.code == ErrorCode.E100
        assert exc.to_error().message == "Trace is missing a timestamp: trace abc"
        assert "TV-E100" in str(exc)

    def test_unknown_span_is_a_key_error(self) -> None:
        with pytest.raises(KeyError) as exc_info:
            raise UnknownSpanError("deadbeef")
        assert str(exc_info.value).startswith("TV-E104: Unknown span id: deadbeef")

    def test_config_error_takes_code(self) -> None:
        assert ConfigError(ErrorCode.E002, "x").code == ErrorCode.E002

    def test_handle_exception_prints_own_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        handle_exception(ZoomActiveError(), ErrorCode.E200)
        assert "TV-E103" in capsys.readouterr().err

    def test_handle_exception_with_details(self, capsys: pytest.CaptureFixture[str]) -> None:
        handle_exception(FileNotFoundError("x.json"), ErrorCode.E301, "x.json")
        assert "TV-E301: Trace file not found: x.json" in capsys.readouterr().err
