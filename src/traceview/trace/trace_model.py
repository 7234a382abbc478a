"""Trace model and ingestion utilities.

Spans are read from Zipkin v2 JSON. A file may hold a single trace (a list of
span objects), many traces (a list of lists, as returned by the trace search
API) or one span per line (JSONL).
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from traceview.errors import SpanDataError
from traceview.trace.span_model import Annotation, Endpoint, Kind, Span

ID_WIDTH = 16


@dataclass(frozen=True)
class Trace:
    """An ordered list of spans sharing one trace id."""

    spans: list[Span]

    @property
    def trace_id(self) -> Optional[str]:
        return self.spans[0].trace_id if self.spans else None


def normalize_id(value: Any) -> Optional[str]:
    """Lower-case a hex id and left-pad it with zeros to 16 characters.

    128-bit trace ids (32 characters) are kept as is.
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    if len(text) < ID_WIDTH:
        return text.rjust(ID_WIDTH, "0")
    return text


def _parse_endpoint(raw: Optional[dict[str, Any]]) -> Optional[Endpoint]:
    if not raw:
        return None
    service_name = raw.get("serviceName")
    if service_name:
        service_name = str(service_name).lower()
    return Endpoint(
        service_name=service_name or None,
        ip=raw.get("ipv4") or raw.get("ipv6") or raw.get("ip"),
        port=_parse_int(raw, "port") or None,
    )


def _parse_int(raw: dict[str, Any], key: str) -> Optional[int]:
    value = raw.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise SpanDataError(f"{key} must be an integer, got {value!r}") from e


def _parse_annotation(raw: Any) -> Annotation:
    if not isinstance(raw, dict):
        raise SpanDataError(f"annotation must be an object, got {type(raw).__name__}")
    return Annotation(
        timestamp=_parse_int(raw, "timestamp") or 0,
        value=str(raw.get("value", "")),
    )


def parse_span(raw: dict[str, Any]) -> Span:
    """Parse one Zipkin v2 span object into a Span.

    Raises:
        SpanDataError: If the object lacks an id or has malformed fields.
    """
    if not isinstance(raw, dict):
        raise SpanDataError(f"span must be an object, got {type(raw).__name__}")

    span_id = normalize_id(raw.get("id"))
    trace_id = normalize_id(raw.get("traceId"))
    if not span_id or not trace_id:
        raise SpanDataError("span requires both traceId and id")

    kind_value = raw.get("kind") or Kind.NONE.value
    try:
        kind = Kind(str(kind_value).upper())
    except ValueError as e:
        raise SpanDataError(f"unknown span kind {kind_value!r}") from e

    duration = _parse_int(raw, "duration")
    if duration is not None and duration < 0:
        raise SpanDataError(f"duration must not be negative, got {duration}")

    annotations = tuple(
        _parse_annotation(a)
        for a in raw.get("annotations") or []
    )
    tags = {str(k): str(v) for k, v in (raw.get("tags") or {}).items()}

    parent_id = normalize_id(raw.get("parentId"))
    # A span pointing at itself is a root
    if parent_id == span_id:
        parent_id = None

    return Span(
        trace_id=trace_id,
        id=span_id,
        parent_id=parent_id,
        kind=kind,
        name=raw.get("name"),
        timestamp=_parse_int(raw, "timestamp"),
        duration=duration,
        local_endpoint=_parse_endpoint(raw.get("localEndpoint")),
        remote_endpoint=_parse_endpoint(raw.get("remoteEndpoint")),
        annotations=annotations,
        tags=tags,
        shared=bool(raw.get("shared", False)),
    )


def span_to_dict(span: Span) -> dict[str, Any]:
    """Convert a Span back to a Zipkin v2 JSON-serializable dict."""
    result: dict[str, Any] = {"traceId": span.trace_id, "id": span.id}
    if span.parent_id:
        result["parentId"] = span.parent_id
    if span.kind != Kind.NONE:
        result["kind"] = span.kind.value
    if span.name:
        result["name"] = span.name
    if span.timestamp is not None:
        result["timestamp"] = span.timestamp
    if span.duration is not None:
        result["duration"] = span.duration
    for key, endpoint in (
        ("localEndpoint", span.local_endpoint),
        ("remoteEndpoint", span.remote_endpoint),
    ):
        if endpoint:
            result[key] = {
                k: v
                for k, v in (
                    ("serviceName", endpoint.service_name),
                    ("ipv4", endpoint.ip),
                    ("port", endpoint.port),
                )
                if v
            }
    if span.annotations:
        result["annotations"] = [
            {"timestamp": a.timestamp, "value": a.value} for a in span.annotations
        ]
    if span.tags:
        result["tags"] = dict(span.tags)
    if span.shared:
        result["shared"] = True
    return result


def parse_traces(data: Any) -> list[list[Span]]:
    """Parse decoded JSON into a list of traces.

    Accepts a single span object, a list of spans (one trace) or a list of
    lists of spans (many traces). A flat list mixing trace ids is grouped by
    trace id, in order of first appearance.
    """
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise SpanDataError(f"expected a list of spans, got {type(data).__name__}")
    if not data:
        return []

    if all(isinstance(item, list) for item in data):
        return [[parse_span(raw) for raw in trace] for trace in data]

    grouped: dict[str, list[Span]] = {}
    for raw in data:
        span = parse_span(raw)
        grouped.setdefault(span.trace_id, []).append(span)
    return list(grouped.values())


def load_traces(path: Path) -> list[list[Span]]:
    """Load traces from a JSON or JSONL file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".jsonl":
        raws: list[Any] = []
        for line_num, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raws.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise SpanDataError(f"{path}:{line_num}: invalid JSON: {e}") from e
        return parse_traces(raws)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SpanDataError(f"{path}: invalid JSON: {e}") from e
    return parse_traces(data)


def load_trace(path: Path) -> list[Span]:
    """Load a file expected to contain exactly one trace."""
    traces = load_traces(path)
    if len(traces) != 1:
        raise SpanDataError(f"{path}: expected one trace, found {len(traces)}")
    return traces[0]
