"""Timeline zoom: re-render spans clipped to a selected time window.

Rows are positioned as percentages of the trace duration. Zooming maps each
row's original ``[start, end)`` onto the selected ``[mintime, maxtime]``
window; zooming out restores the original rows exactly, never recomputing
them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from traceview.errors import InvalidZoomRangeError, ZoomActiveError
from traceview.summary import add_timestamps, get_max_duration
from traceview.trace.build_trace import TraceTree

MARKER_COUNT = 6


@dataclass(frozen=True)
class SpanRow:
    """A span's original position on the timeline."""

    id: str
    offset_percent: float
    width_percent: float


@dataclass(frozen=True)
class ZoomedRow:
    id: str
    offset_percent: float
    width_percent: float
    highlighted: bool


def layout_rows(tree: TraceTree) -> list[SpanRow]:
    """Position every span of the tree against the whole trace, depth-first.

    Spans sharing an id form one row starting at the earliest leg and ending
    at the latest leg end.
    """
    timestamps: list[int] = []
    for span in tree.root.iter_spans():
        add_timestamps(span, timestamps)
    trace_start = min(timestamps) if timestamps else 0
    trace_duration = get_max_duration(timestamps)

    rows: list[SpanRow] = []
    for node in tree.traverse():
        start = node.timestamp
        if start is None or not trace_duration:
            rows.append(SpanRow(node.id, 0.0, 0.0))
            continue
        ends = [
            s.timestamp + s.duration
            for s in node.spans
            if s.timestamp is not None and s.duration
        ]
        end = max(ends) if ends else start
        rows.append(
            SpanRow(
                id=node.id,
                offset_percent=(start - trace_start) / trace_duration * 100,
                width_percent=(end - start) / trace_duration * 100,
            )
        )
    return rows


def _zoom_row(row: SpanRow, duration: float, mintime: float, maxtime: float) -> ZoomedRow:
    new_duration = maxtime - mintime
    start = row.offset_percent * duration / 100
    end = start + row.width_percent * duration / 100

    if start >= maxtime:
        # Starting exactly at the window end still counts as overlapping it
        return ZoomedRow(row.id, 100.0, 0.0, start == maxtime)

    if start >= mintime:
        offset = (start - mintime) / new_duration * 100
        if end <= maxtime:
            width = (end - start) / new_duration * 100
        else:
            width = (maxtime - start) / new_duration * 100
        return ZoomedRow(row.id, offset, width, True)

    if end <= mintime:
        return ZoomedRow(row.id, 0.0, 0.0, False)
    if end <= maxtime:
        return ZoomedRow(row.id, 0.0, (end - mintime) / new_duration * 100, True)
    return ZoomedRow(row.id, 0.0, 100.0, True)


def zoom(
    rows: Sequence[SpanRow],
    mintime: float,
    maxtime: float,
    duration: float,
) -> list[ZoomedRow]:
    """Project rows laid out against ``duration`` onto ``[mintime, maxtime]``.

    Times are offsets from the trace start, in the same unit as ``duration``.

    Raises:
        InvalidZoomRangeError: If ``mintime >= maxtime``.
    """
    if mintime >= maxtime:
        raise InvalidZoomRangeError(f"{mintime} >= {maxtime}")
    return [_zoom_row(row, duration, mintime, maxtime) for row in rows]


def zoom_out(rows: Sequence[SpanRow]) -> list[SpanRow]:
    """Return the original rows, as they were laid out before any zoom."""
    return list(rows)


def time_markers(mintime: float, maxtime: float, count: int = MARKER_COUNT) -> list[str]:
    """Labels for evenly spaced time-axis markers across a window."""
    step = (maxtime - mintime) / (count - 1)
    return [f"{mintime + step * i:.2f}" for i in range(count)]


def selection_to_range(
    left_px: float,
    width_px: float,
    view_left_px: float,
    view_width_px: float,
    duration: float,
) -> Optional[tuple[float, float]]:
    """Convert a dragged selection rectangle into a ``(mintime, maxtime)`` window.

    A selection starting left of the timeline (over the service name column)
    is clipped to the timeline's left edge. Returns None when the selection
    has no positive width, which callers treat as a click.
    """
    if left_px < view_left_px:
        width_px -= view_left_px - left_px
        left_px = view_left_px

    scale = duration / view_width_px
    mintime = (left_px - view_left_px) * scale
    maxtime = (left_px + width_px - view_left_px) * scale
    if mintime >= maxtime:
        return None
    return mintime, maxtime


class ZoomMapper:
    """Zoom state for one trace timeline.

    Holds the original rows; while zoomed a new selection is refused until
    ``zoom_out`` re-enables it.
    """

    def __init__(self, rows: Sequence[SpanRow], duration: float) -> None:
        self._original = tuple(rows)
        self.duration = duration
        self.window: Optional[tuple[float, float]] = None

    @classmethod
    def from_tree(cls, tree: TraceTree) -> ZoomMapper:
        timestamps: list[int] = []
        for span in tree.root.iter_spans():
            add_timestamps(span, timestamps)
        return cls(layout_rows(tree), get_max_duration(timestamps))

    @property
    def rows(self) -> list[SpanRow]:
        return list(self._original)

    @property
    def zoomed(self) -> bool:
        return self.window is not None

    @property
    def selection_enabled(self) -> bool:
        return self.window is None

    def markers(self) -> list[str]:
        if self.window is None:
            return time_markers(0, self.duration)
        return time_markers(*self.window)

    def zoom(self, mintime: float, maxtime: float) -> list[ZoomedRow]:
        if self.zoomed:
            raise ZoomActiveError()
        result = zoom(self._original, mintime, maxtime, self.duration)
        self.window = (mintime, maxtime)
        return result

    def zoom_out(self) -> list[SpanRow]:
        self.window = None
        return zoom_out(self._original)
