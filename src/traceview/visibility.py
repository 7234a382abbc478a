"""Show/hide state for an interactive span tree.

Each span id gets a ``VisibilityRecord`` kept in an id-keyed arena. Expanding
a node grants visibility to its direct children, and records the grant in
reference counts:

- ``open_parents`` on a node counts the grants from its expanded parent;
- ``open_children`` on a node counts the expanded descendants that made it
  visible from below.

Collapsing reverses the grant. A descendant whose ``open_parents`` drops to
zero is hidden and its own subtree is collapsed in turn, while anything still
held open by another expansion stays visible.

A ``VisibilityState`` belongs to one viewer session and is not thread-safe.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from traceview.errors import UnknownSpanError
from traceview.trace.build_trace import TraceTree


class RefCount:
    """A non-negative counter whose decrement saturates at zero."""

    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value = 0

    def __int__(self) -> int:
        return self._value

    def __repr__(self) -> str:
        return f"RefCount({self._value})"

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> None:
        self._value += 1

    def decrement(self) -> bool:
        """Decrement unless already zero. Returns True if the value changed."""
        if self._value == 0:
            return False
        self._value -= 1
        return True

    def reset(self) -> None:
        self._value = 0


@dataclass
class VisibilityRecord:
    """Per-span view state. Mutated only through ``VisibilityState``."""

    span_id: str
    is_root: bool
    child_ids: tuple[str, ...] = ()
    ancestor_ids: tuple[str, ...] = ()
    expanded: bool = False
    visible: bool = False
    _open_parents: RefCount = field(default_factory=RefCount, repr=False)
    _open_children: RefCount = field(default_factory=RefCount, repr=False)

    @property
    def open_parents(self) -> int:
        return self._open_parents.value

    @property
    def open_children(self) -> int:
        return self._open_children.value

    @property
    def state(self) -> str:
        if not self.visible:
            return "hidden"
        return "expanded" if self.expanded else "collapsed"


class VisibilityState:
    """Reference-counted expand/collapse over one span tree.

    Every operation returns the set of span ids whose visibility changed so
    the caller can re-render just those rows.
    """

    def __init__(self, tree: TraceTree) -> None:
        top_level = set(tree.top_level_ids())
        self._records: dict[str, VisibilityRecord] = {}
        for node in tree.traverse():
            span_id = node.id
            is_root = span_id in top_level
            self._records[span_id] = VisibilityRecord(
                span_id=span_id,
                is_root=is_root,
                child_ids=tuple(tree.child_ids.get(span_id, ())),
                ancestor_ids=tuple(tree.ancestor_ids.get(span_id, ())),
                visible=is_root,
            )

    def __contains__(self, span_id: str) -> bool:
        return span_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def record(self, span_id: str) -> VisibilityRecord:
        try:
            return self._records[span_id]
        except KeyError:
            raise UnknownSpanError(span_id) from None

    def is_visible(self, span_id: str) -> bool:
        return self.record(span_id).visible

    def visible_ids(self) -> list[str]:
        """Visible span ids, in tree order."""
        return [span_id for span_id, rec in self._records.items() if rec.visible]

    def _set_visible(self, rec: VisibilityRecord, visible: bool, changed: set[str]) -> None:
        if rec.visible != visible:
            rec.visible = visible
            changed.add(rec.span_id)

    def show(self, span_ids: Iterable[str]) -> set[str]:
        """Expand the given nodes, making their children visible."""
        selected = [self.record(span_id) for span_id in span_ids]
        changed: set[str] = set()

        # Mark the whole selection first so that grants accumulate across it
        for rec in selected:
            rec.expanded = True
            self._set_visible(rec, True, changed)

        family: dict[str, VisibilityRecord] = {}
        for rec in selected:
            for child_id in rec.child_ids:
                child = self._records[child_id]
                child._open_parents.increment()
                family[child_id] = child
            for ancestor_id in rec.ancestor_ids:
                # The root may be missing from a headless trace
                ancestor = self._records.get(ancestor_id)
                if ancestor is not None:
                    ancestor._open_children.increment()
                    family[ancestor_id] = ancestor

        for member in family.values():
            self._set_visible(member, True, changed)
        return changed

    def hide(self, span_ids: Iterable[str], children_only: bool = False) -> set[str]:
        """Collapse the given nodes, withdrawing the visibility they granted.

        With ``children_only`` the nodes themselves stay visible and their
        ancestors are left alone; only the counts below them are audited.
        A child left without an open parent is hidden and its own subtree is
        collapsed in turn.
        """
        changed: set[str] = set()
        self._hide([self.record(span_id) for span_id in span_ids], children_only, changed)
        return changed

    def _hide(
        self,
        selected: list[VisibilityRecord],
        children_only: bool,
        changed: set[str],
    ) -> None:
        closed: dict[str, VisibilityRecord] = {}
        for rec in selected:
            rec.expanded = False

            if not children_only:
                if not rec.is_root:
                    self._set_visible(rec, False, changed)
                for ancestor_id in rec.ancestor_ids:
                    ancestor = self._records.get(ancestor_id)
                    if ancestor is None:
                        continue
                    ancestor._open_children.decrement()
                    if self._released(ancestor):
                        self._set_visible(ancestor, False, changed)

            for child_id in rec.child_ids:
                child = self._records[child_id]
                if child._open_parents.decrement() and child.open_parents == 0:
                    closed[child_id] = child

        for child in closed.values():
            self._set_visible(child, False, changed)
        if closed:
            self._hide(list(closed.values()), True, changed)

    @staticmethod
    def _released(rec: VisibilityRecord) -> bool:
        return not rec.is_root and rec.open_parents == 0 and rec.open_children == 0

    def toggle(self, span_id: str) -> set[str]:
        """Collapse an expanded node's subtree, or expand a collapsed node."""
        rec = self.record(span_id)
        if rec.expanded:
            return self.hide([span_id], children_only=True)
        return self.show([span_id])

    def expand_all(self) -> set[str]:
        return self.show(list(self._records))

    def collapse_all(self) -> set[str]:
        """Reset every count and hide everything but the top-level nodes."""
        changed: set[str] = set()
        for rec in self._records.values():
            rec._open_parents.reset()
            rec._open_children.reset()
            rec.expanded = False
            self._set_visible(rec, rec.is_root, changed)
        return changed
