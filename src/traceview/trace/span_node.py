"""Span tree nodes."""
from __future__ import annotations

from collections import deque
from typing import Iterator, Optional

from traceview.trace.span_model import Span


class SpanNode:
    """A node in a span tree.

    Wraps one primary span, or nothing when it is the synthetic root of a
    headless trace. Other spans reported with the same id (the shared server
    leg of a client span, or duplicate reports) are kept as ``legs`` so that
    node ids stay unique.
    """

    def __init__(self, span: Optional[Span] = None) -> None:
        self.span = span
        self.legs: list[Span] = []
        self.parent: Optional[SpanNode] = None
        self.children: list[SpanNode] = []

    def __repr__(self) -> str:
        return f"SpanNode(id={self.id!r}, children={len(self.children)})"

    @property
    def id(self) -> Optional[str]:
        return self.span.id if self.span else None

    @property
    def is_synthetic(self) -> bool:
        return self.span is None

    @property
    def timestamp(self) -> Optional[int]:
        """Earliest timestamp among the spans held by this node."""
        present = [s.timestamp for s in self.spans if s.timestamp is not None]
        return min(present) if present else None

    @property
    def spans(self) -> list[Span]:
        if self.span is None:
            return []
        return [self.span, *self.legs]

    def add_child(self, child: SpanNode) -> None:
        child.parent = self
        self.children.append(child)

    def traverse(self) -> Iterator[SpanNode]:
        """Depth-first, pre-order walk: a node, then each child subtree in order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def traverse_breadth_first(self) -> Iterator[SpanNode]:
        queue = deque([self])
        while queue:
            node = queue.popleft()
            yield node
            queue.extend(node.children)

    def iter_spans(self) -> Iterator[Span]:
        """Every span in this subtree, legs included, in depth-first order."""
        for node in self.traverse():
            yield from node.spans
