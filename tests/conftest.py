"""traceview test configuration and fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add src to path for imports
SRC_DIR = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_DIR))


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the fixtures directory path."""
    return Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def traces_dir(fixtures_dir: Path) -> Path:
    return fixtures_dir / "traces"


@pytest.fixture
def http_trace_path(traces_dir: Path) -> Path:
    """A frontend -> backend call: root server span, client span, shared server leg."""
    return traces_dir / "http_trace.json"


@pytest.fixture
def search_results_path(traces_dir: Path) -> Path:
    """Three traces as returned by a trace search; the last one has no timestamps."""
    return traces_dir / "search_results.json"


@pytest.fixture
def headless_path(traces_dir: Path) -> Path:
    """JSONL trace whose root span was never reported."""
    return traces_dir / "headless.jsonl"


@pytest.fixture
def invalid_trace_path(traces_dir: Path) -> Path:
    return traces_dir / "invalid.json"
