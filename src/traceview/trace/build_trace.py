from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from traceview.trace.span_model import Span
from traceview.trace.span_node import SpanNode
from traceview.trace.trace_model import Trace

logger = logging.getLogger(__name__)


def _timestamp_key(timestamp: Optional[int]) -> tuple[bool, int]:
    return (timestamp is None, timestamp or 0)


def build_trace_from_spans(spans: list[Span]) -> Trace:
    """Offline ordering: stable sort by timestamp when present; otherwise preserve input order."""

    def key(s: Span):
        return _timestamp_key(s.timestamp)

    ordered = sorted(spans, key=key)
    return Trace(spans=ordered)


@dataclass
class TraceTree:
    """A span tree plus the id maps derived from it."""

    root: SpanNode
    nodes: dict[str, SpanNode] = field(default_factory=dict)
    child_ids: dict[str, list[str]] = field(default_factory=dict)
    ancestor_ids: dict[str, list[str]] = field(default_factory=dict)
    spans_by_service: dict[str, list[str]] = field(default_factory=dict)

    @property
    def headless(self) -> bool:
        return self.root.is_synthetic

    @property
    def trace_id(self) -> Optional[str]:
        for span in self.root.iter_spans():
            return span.trace_id
        return None

    def top_level_ids(self) -> list[str]:
        """Ids of the nodes without a resolvable parent."""
        if self.root.is_synthetic:
            return [child.id for child in self.root.children]
        return [self.root.id]

    def traverse(self) -> Iterator[SpanNode]:
        """Depth-first walk of the real (non-synthetic) nodes."""
        for node in self.root.traverse():
            if not node.is_synthetic:
                yield node


def _index_nodes(spans: list[Span]) -> dict[str, SpanNode]:
    nodes: dict[str, SpanNode] = {}
    for span in spans:
        node = nodes.get(span.id)
        if node is None:
            nodes[span.id] = SpanNode(span)
        elif node.span is not None and node.span.shared and not span.shared:
            # The client leg owns the row; the shared server leg rides along
            node.legs.insert(0, node.span)
            node.span = span
        else:
            node.legs.append(span)
    return nodes


def _break_cycles(parent_of: dict[str, Optional[str]]) -> None:
    """Detach any node whose parent chain loops back on itself."""
    settled: set[str] = set()
    for start in parent_of:
        path: list[str] = []
        on_path: set[str] = set()
        current: Optional[str] = start
        while current is not None and current in parent_of and current not in settled:
            if current in on_path:
                logger.debug("Parent cycle at span %s; adopting it as a root", current)
                parent_of[current] = None
                break
            path.append(current)
            on_path.add(current)
            current = parent_of[current]
        settled.update(path)


def build_tree(spans: list[Span]) -> TraceTree:
    """Build a span tree from a flat, possibly unordered span list.

    A span without a parent id is a true root. A span whose parent is not in
    the list is an orphan. With exactly one true root and no orphans, that
    root is the tree root; otherwise a synthetic root adopts every top-level
    node (a "headless" trace).
    """
    nodes = _index_nodes(spans)

    parent_of: dict[str, Optional[str]] = {}
    missing_parent: dict[str, str] = {}
    for span_id, node in nodes.items():
        parent_id = node.span.parent_id if node.span else None
        if parent_id and parent_id not in nodes:
            missing_parent[span_id] = parent_id
            parent_id = None
        parent_of[span_id] = parent_id
    _break_cycles(parent_of)

    top_level: list[SpanNode] = []
    for span_id, node in nodes.items():
        parent_id = parent_of[span_id]
        if parent_id is None:
            top_level.append(node)
        else:
            nodes[parent_id].add_child(node)

    for node in nodes.values():
        node.children.sort(key=lambda n: _timestamp_key(n.timestamp))
    top_level.sort(key=lambda n: _timestamp_key(n.timestamp))

    if len(top_level) == 1 and not missing_parent and top_level[0].span.is_root:
        root = top_level[0]
    else:
        logger.debug(
            "Headless trace: %d top-level spans, %d with missing parents",
            len(top_level),
            len(missing_parent),
        )
        root = SpanNode()
        for node in top_level:
            root.add_child(node)

    tree = TraceTree(root=root, nodes=nodes)
    for node in tree.traverse():
        span_id = node.id
        tree.child_ids[span_id] = [child.id for child in node.children]

        ancestors: list[str] = []
        top = node
        while top.parent is not None and not top.parent.is_synthetic:
            top = top.parent
            ancestors.append(top.id)
        # The declared parent of an orphan is kept, operations skip it
        if top.id in missing_parent:
            ancestors.append(missing_parent[top.id])
        tree.ancestor_ids[span_id] = ancestors

        for span in node.spans:
            for service_name in span.service_names():
                ids = tree.spans_by_service.setdefault(service_name, [])
                if span_id not in ids:
                    ids.append(span_id)

    return tree
