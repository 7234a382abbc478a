"""Tests for the traceview command line."""
from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest

from traceview.cli import main
from traceview.config import ENV_KEYS

SRC_DIR = Path(__file__).parent.parent / "src"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep stray .env, traceview.yaml and TRACEVIEW_* settings out of the CLI."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    (tmp_path / ".git").mkdir()
    monkeypatch.chdir(tmp_path)


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestSummarize:
    """Tests for the summarize command."""

    def test_json_output_ranked(
        self, search_results_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run([
            "--utc", "summarize", "--traces", str(search_results_path),
            "--service", "payments", "--format", "json",
        ])
        captured = capsys.readouterr()

        assert rc == 0
        items = json.loads(captured.out)
        assert [i["trace_id"] for i in items] == ["000000000000000a", "000000000000000c"]
        assert items[0]["service_percentage"] == 40
        assert items[0]["start_ts"].endswith("+0000")
        assert "missing a timestamp: trace 000000000000000d" in captured.err

    def test_text_output(self, search_results_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["summarize", "--traces", str(search_results_path)])
        out = capsys.readouterr().out

        assert rc == 0
        assert "2 trace(s), 1 skipped" in out
        assert "[trace-error-critical]" in out

    def test_invalid_input_rejected(
        self, invalid_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run(["summarize", "--traces", str(invalid_trace_path)])
        assert rc == 1
        err = capsys.readouterr().err
        assert "error(s)" in err
        assert "TV-E201" in err

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["summarize", "--traces", str(tmp_path / "nope.json")])
        assert rc == 1
        assert "TV-E301" in capsys.readouterr().err


class TestTree:
    """Tests for the tree command."""

    def test_collapsed_by_default(
        self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path)])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines == ["[+] bb1f0e21882325b8 frontend: get / 168.731ms"]

    def test_expand_all(self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path), "--expand-all"])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines[0].startswith("[-] bb1f0e21882325b8")
        assert lines[1] == "      c8c50ebd2abc179e frontend: get 111.121ms"

    def test_headless_banner(self, headless_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["tree", "--trace", str(headless_path), "--expand", "2"])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines[0].startswith("(headless trace")
        assert len(lines) == 4

    def test_unknown_span(self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path), "--expand", "ffff"])
        assert rc == 1
        assert "TV-E104" in capsys.readouterr().err

    def test_service_spans_start_expanded(
        self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path), "--service", "backend"])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines == [
            "[+] bb1f0e21882325b8 frontend: get / 168.731ms",
            "      c8c50ebd2abc179e frontend: get 111.121ms",
        ]

    def test_service_owning_root_expands_it(
        self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path), "--service", "frontend"])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines[0] == "[-] bb1f0e21882325b8 frontend: get / 168.731ms"
        assert len(lines) == 2

    def test_service_defaults_to_config(
        self,
        http_trace_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("TRACEVIEW_SERVICE_NAME", "backend")
        rc = _run(["tree", "--trace", str(http_trace_path)])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert len(lines) == 2
        assert lines[1].endswith("c8c50ebd2abc179e frontend: get 111.121ms")

    def test_unknown_service_expands_nothing(
        self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        rc = _run(["tree", "--trace", str(http_trace_path), "--service", "nope"])
        assert rc == 0
        assert capsys.readouterr().out.splitlines() == [
            "[+] bb1f0e21882325b8 frontend: get / 168.731ms"
        ]


class TestZoom:
    """Tests for the zoom command."""

    def test_zoom_window(self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["zoom", "--trace", str(http_trace_path), "--min", "40000", "--max", "120000"])
        lines = capsys.readouterr().out.splitlines()

        assert rc == 0
        assert lines[0].startswith("markers: 40000.00")
        assert all(line.startswith("*") for line in lines[1:])
        assert len(lines) == 3

    def test_reversed_window(self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        rc = _run(["zoom", "--trace", str(http_trace_path), "--min", "5", "--max", "1"])
        assert rc == 1
        assert "TV-E102" in capsys.readouterr().err


class TestValidate:
    """Tests for the validate command."""

    def test_valid(self, http_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["validate", "--trace", str(http_trace_path)]) == 0
        assert "Valid (3 spans)" in capsys.readouterr().out

    def test_invalid(self, invalid_trace_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["validate", "--trace", str(invalid_trace_path)]) == 1
        assert "$[0].traceId" in capsys.readouterr().out

    def test_no_validate_skips_schema(
        self, invalid_trace_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        # Parsing still rejects the negative duration
        rc = _run(["--no-validate", "summarize", "--traces", str(invalid_trace_path)])
        assert rc == 1
        assert "TV-E200" in capsys.readouterr().err


class TestModuleEntryPoint:
    """Tests for running the package with ``python -m``."""

    def test_show_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "traceview.yaml"
        config_file.write_text("service_name: web\nmax_workers: 3\n", encoding="utf-8")

        result = subprocess.run(
            [sys.executable, "-m", "traceview", "--config", str(config_file), "show-config"],
            cwd=str(SRC_DIR),
            capture_output=True,
            text=True,
        )

        assert result.returncode == 0, f"CLI failed: {result.stderr}"
        data = json.loads(result.stdout)
        assert data["service_name"] == "web"
        assert data["max_workers"] == 3

    def test_parallel_summarize(self, search_results_path: Path, tmp_path: Path) -> None:
        config_file = tmp_path / "traceview.yaml"
        config_file.write_text("max_workers: 2\n", encoding="utf-8")

        result = subprocess.run(
            [
                sys.executable, "-m", "traceview",
                "--config", str(config_file),
                "summarize", "--traces", str(search_results_path), "--format", "json",
            ],
            cwd=str(SRC_DIR),
            capture_output=True,
            text=True,
        )

        assert result.returncode == 0, f"CLI failed: {result.stderr}"
        assert len(json.loads(result.stdout)) == 2

    def test_bad_config_file(self, tmp_path: Path) -> None:
        result = subprocess.run(
            [sys.executable, "-m", "traceview", "--config", str(tmp_path / "no.yaml"), "show-config"],
            cwd=str(SRC_DIR),
            capture_output=True,
            text=True,
        )
        assert result.returncode == 1
        assert "TV-E001" in result.stderr
