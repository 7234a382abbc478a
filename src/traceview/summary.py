"""Trace summaries for list views.

Computes, per trace, the overall timestamp and duration, span count, error
classification and per-service time intervals, then ranks a batch of traces
for display. Summaries of distinct traces share no state, so a batch may be
summarized in parallel; only the final ranking needs every summary.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Union

from traceview.errors import EmptyTraceError, MissingTimestampError, TraceError
from traceview.trace.build_trace import TraceTree, build_tree
from traceview.trace.span_model import Span
from traceview.trace.span_node import SpanNode

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Trace error classification, in increasing severity."""

    NONE = "none"
    TRANSIENT = "transient"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {ErrorType.NONE: 0, ErrorType.TRANSIENT: 1, ErrorType.CRITICAL: 2}

Classifier = Callable[[Span, ErrorType], ErrorType]


@dataclass(frozen=True)
class Interval:
    """``[timestamp, timestamp + duration)`` in microseconds."""

    timestamp: int
    duration: int

    @property
    def end(self) -> int:
        return self.timestamp + self.duration


@dataclass(frozen=True)
class ServiceSummary:
    service_name: str
    span_count: int
    max_span_duration: int

    @property
    def max_span_duration_str(self) -> str:
        return mk_duration_str(self.max_span_duration)


@dataclass(frozen=True)
class TraceSummary:
    """Aggregates of one trace. Created once, never mutated."""

    trace_id: Optional[str]
    timestamp: int
    duration: int
    span_count: int
    error_type: ErrorType
    grouped_timestamps: dict[str, tuple[Interval, ...]] = field(default_factory=dict)


@dataclass
class TraceListItem:
    """One row of a ranked trace list."""

    trace_id: str
    timestamp: int
    start_ts: str
    span_count: int
    duration_us: int = 0
    width: Optional[int] = None
    duration_ms: Optional[float] = None
    duration_str: str = ""
    service_summaries: list[ServiceSummary] = field(default_factory=list)
    service_percentage: Optional[int] = None
    info_class: Optional[str] = None

    def to_dict(self) -> dict:
        result = asdict(self)
        result["service_summaries"] = [
            {
                "service_name": s.service_name,
                "span_count": s.span_count,
                "max_span_duration_str": s.max_span_duration_str,
            }
            for s in self.service_summaries
        ]
        return result


def add_timestamps(span: Span, timestamps: list[int]) -> None:
    """Add a span's start and end to the pool.

    All timestamps are used, not just client/server ones, so that no span
    falls outside the trace's time range.
    """
    if not span.timestamp:
        return
    timestamps.append(span.timestamp)
    if not span.duration:
        return
    timestamps.append(span.timestamp + span.duration)


def get_max_duration(timestamps: list[int]) -> int:
    if len(timestamps) > 1:
        return max(timestamps) - min(timestamps)
    return 0


def get_error_type(span: Span, current: ErrorType) -> ErrorType:
    """Default classifier: an ``error`` tag is critical, an ``error`` annotation transient."""
    if current == ErrorType.CRITICAL:
        return current
    # An empty error tag still counts
    if "error" in span.tags:
        return ErrorType.CRITICAL
    if any(a.value == "error" for a in span.annotations):
        return ErrorType.TRANSIENT
    return current


def _add_service_intervals(span: Span, grouped: dict[str, list[Interval]]) -> None:
    interval = Interval(timestamp=span.timestamp or 0, duration=span.duration or 0)
    for endpoint in (span.local_endpoint, span.remote_endpoint):
        if endpoint and endpoint.service_name:
            grouped.setdefault(endpoint.service_name, []).append(interval)


def trace_summary(
    tree: Union[TraceTree, SpanNode],
    classify: Classifier = get_error_type,
) -> TraceSummary:
    """Summarize a (skew-corrected) span tree.

    Every span is visited once, shared legs included. A span with both a
    local and a remote service name counts against both services.

    Raises:
        MissingTimestampError: If no span carries a timestamp.
    """
    root = tree.root if isinstance(tree, TraceTree) else tree

    timestamps: list[int] = []
    grouped: dict[str, list[Interval]] = {}
    trace_id: Optional[str] = None
    span_count = 0
    error_type = ErrorType.NONE

    for span in root.iter_spans():
        span_count += 1
        trace_id = span.trace_id
        classified = classify(span, error_type)
        # Severity only ever goes up
        if classified.severity > error_type.severity:
            error_type = classified
        add_timestamps(span, timestamps)
        _add_service_intervals(span, grouped)

    if not timestamps:
        raise MissingTimestampError(trace_id)

    return TraceSummary(
        trace_id=trace_id,
        timestamp=min(timestamps),
        duration=get_max_duration(timestamps),
        span_count=span_count,
        error_type=error_type,
        grouped_timestamps={name: tuple(values) for name, values in grouped.items()},
    )


def total_duration(intervals: Iterable[Interval]) -> int:
    """Wall-clock time covered by the intervals, overlaps counted once.

    Used to compute the share of a trace spent in a selected service.
    """
    # Intervals without a duration can't be merged; the rest must be sorted
    filtered = sorted((i for i in intervals if i.duration), key=lambda i: i.timestamp)
    if not filtered:
        return 0

    result = filtered[0].duration
    current_end = filtered[0].end
    for nxt in filtered[1:]:
        if nxt.end <= current_end:
            continue
        if nxt.timestamp <= current_end:
            result += nxt.end - current_end
        else:
            result += nxt.duration
        current_end = nxt.end
    return result


def mk_duration_str(duration: Optional[float]) -> str:
    """Human-readable duration from microseconds: μs, ms or s."""
    if not duration:
        return ""
    if duration < 1000:
        return f"{duration:.0f}μs"
    if duration < 1_000_000:
        # Some instrumentation only reports millisecond resolution
        if duration % 1000 == 0:
            return f"{duration / 1000:.0f}ms"
        return f"{duration / 1000:.3f}ms"
    return f"{duration / 1_000_000:.3f}s"


def format_date(timestamp: int, utc: bool = False) -> str:
    """Format epoch microseconds as ``MM-DD-YYYYTHH:MM:SS.mmm+ZZZZ``."""
    seconds, micros = divmod(int(timestamp), 1_000_000)
    if utc:
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        moment = datetime.fromtimestamp(seconds).astimezone()
    return (
        moment.strftime("%m-%d-%YT%H:%M:%S")
        + f".{micros // 1000:03d}"
        + moment.strftime("%z")
    )


def get_service_summaries(
    grouped_timestamps: dict[str, Sequence[Interval]],
) -> list[ServiceSummary]:
    """Per-service span count and longest span, longest first then by name."""
    summaries = [
        ServiceSummary(
            service_name=name,
            span_count=len(intervals),
            max_span_duration=max(i.duration for i in intervals),
        )
        for name, intervals in grouped_timestamps.items()
        if intervals
    ]
    summaries.sort(key=lambda s: (-s.max_span_duration, s.service_name))
    return summaries


def rank_summaries(
    summaries: Sequence[TraceSummary],
    service_name: Optional[str] = None,
    utc: bool = False,
) -> list[TraceListItem]:
    """Turn summaries into list rows, longest trace first.

    Rows of equal duration are ordered by trace id. When ``service_name`` is
    given and the service recorded time in a trace, the row carries the
    percentage of the trace spent in that service.
    """
    if not summaries:
        return []
    max_duration = max(s.duration for s in summaries)

    items: list[TraceListItem] = []
    for t in summaries:
        item = TraceListItem(
            trace_id=t.trace_id or "",
            timestamp=t.timestamp,
            start_ts=format_date(t.timestamp, utc),
            span_count=t.span_count,
        )

        duration = t.duration or 0
        if duration:
            item.duration_us = duration
            item.width = int(duration / max_duration * 100)
            item.duration_ms = duration / 1000
            item.duration_str = mk_duration_str(duration)

        # Traces without service names get no service-dependent data
        if t.grouped_timestamps:
            item.service_summaries = get_service_summaries(t.grouped_timestamps)
            if service_name and duration and t.grouped_timestamps.get(service_name):
                service_time = total_duration(t.grouped_timestamps[service_name])
                item.service_percentage = int(service_time / duration * 100)

        if t.error_type != ErrorType.NONE:
            item.info_class = f"trace-error-{t.error_type.value}"
        items.append(item)

    items.sort(key=lambda i: (-i.duration_us, i.trace_id))
    return items


def _summarize_one(
    spans: list[Span],
    correct_skew: Optional[Callable[[list[Span]], list[Span]]],
    classify: Classifier,
) -> tuple[Optional[str], Union[TraceSummary, Exception]]:
    trace_id = spans[0].trace_id if spans else None
    try:
        if not spans:
            raise EmptyTraceError()
        if correct_skew is not None:
            spans = correct_skew(spans)
        return trace_id, trace_summary(build_tree(spans), classify)
    except Exception as e:
        # Any failure skips just this trace
        return trace_id, e


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, TraceError):
        return exc.to_error().message
    return f"{type(exc).__name__}: {exc}"


def summarize_traces(
    traces: Iterable[list[Span]],
    service_name: Optional[str] = None,
    utc: bool = False,
    correct_skew: Optional[Callable[[list[Span]], list[Span]]] = None,
    on_error: Optional[Callable[[Optional[str], Exception], None]] = None,
    executor: Optional[Executor] = None,
    classify: Classifier = get_error_type,
) -> list[TraceListItem]:
    """Summarize and rank a batch of traces.

    A trace that cannot be summarized (no spans, no timestamp, or an error
    raised by ``correct_skew`` or ``classify``) is skipped: it is logged and
    passed to ``on_error``, and the rest of the batch is still ranked.
    """
    traces = list(traces)

    def work(spans: list[Span]):
        return _summarize_one(spans, correct_skew, classify)

    if executor is not None:
        results = list(executor.map(work, traces))
    else:
        results = [work(spans) for spans in traces]

    summaries: list[TraceSummary] = []
    for trace_id, outcome in results:
        if isinstance(outcome, Exception):
            logger.warning("Skipping trace %s: %s", trace_id, _failure_message(outcome))
            if on_error is not None:
                on_error(trace_id, outcome)
            continue
        summaries.append(outcome)

    return rank_summaries(summaries, service_name=service_name, utc=utc)
