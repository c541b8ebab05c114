"""Core hierarchy index: records, derived indexes and cached traversals.

A forest of records where each record optionally names one parent by id.
The engine never inspects a record beyond its ``id`` and ``parent`` keys;
everything else is opaque payload owned by the caller.

Internal structures:
    - primary table: id -> record
    - children table: id -> ordered list of child ids (every live id has one)
    - parent table: id -> parent id (only for parents that resolved)
    - descendant cache and ancestor cache: id -> previously computed list

Relations are stored as id lookups into the primary table, never as object
references between records, so a cyclic parent chain is a cycle of keys and
not of owned objects.

Thread Safety:
    All operations on HierarchyIndex are protected by an internal RLock
    covering every table at once, so readers never observe a half-applied
    mutation. For several operations that must appear atomic, use batch():

        with index.batch():
            index.add_item({"id": 10, "parent": 1})
            index.add_item({"id": 11, "parent": 10})

Diagnostics:
    Conflicting input never raises. Duplicate ids, unknown ids and cyclic
    walks are logged at WARNING on the ``treeindex.engine`` logger and
    delivered as Diagnostic objects to the optional ``on_diagnostic``
    callback. Mutators also return False when they did nothing.
"""

import logging
import threading
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger("treeindex.engine")

RecordId = str | int
Record = dict[str, Any]

_EXHAUSTED = object()


class DiagnosticKind(str, Enum):
    """Non-fatal conditions reported by the index."""

    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_ID = "unknown_id"
    MISSING_ID = "missing_id"
    CYCLE = "cycle"


@dataclass(frozen=True)
class Diagnostic:
    """A condition the index absorbed instead of raising.

    Attributes:
        kind: What happened
        id: The record id involved (None for MISSING_ID)
        operation: The operation that hit the condition ("build", "add_item", ...)
        message: Human-readable description, identical to the logged line
    """

    kind: DiagnosticKind
    id: Any
    operation: str
    message: str


DiagnosticCallback = Callable[[Diagnostic], None]


class HierarchyIndex:
    """Indexed store for parent-linked records with cached traversals.

    Lookups by id and direct children are O(1). The full descendant set and
    the full ancestor chain cost time proportional to their size on the first
    call and O(1) afterwards, until a mutation invalidates them.

    Design principles:
    - Records are plain dicts; only ``id`` and ``parent`` are read
    - The live record list is shared with the caller, not copied
    - Children and parent tables are derived, keyed by id
    - Caches are either absent or exactly equal to a fresh computation
    """

    def __init__(
        self,
        records: Iterable[Record] | None = None,
        *,
        on_diagnostic: DiagnosticCallback | None = None,
    ) -> None:
        if records is None:
            records = []
        elif not isinstance(records, list):
            records = list(records)
        self._records: list[Record] = records
        self._by_id: dict[RecordId, Record] = {}
        self._children: dict[RecordId, list[RecordId]] = {}
        self._parents: dict[RecordId, RecordId] = {}
        self._descendants_cache: dict[RecordId, list[Record]] = {}
        self._ancestors_cache: dict[RecordId, list[Record]] = {}
        self._on_diagnostic = on_diagnostic
        self._lock = threading.RLock()
        self._build_indexes()

    def __getstate__(self) -> dict[str, Any]:
        """Support for pickle - exclude the lock and the callback."""
        state = self.__dict__.copy()
        del state["_lock"]
        state["_on_diagnostic"] = None
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Support for pickle - recreate the lock."""
        self.__dict__.update(state)
        self._lock = threading.RLock()

    def __deepcopy__(self, memo: dict) -> "HierarchyIndex":
        """Support for copy.deepcopy - create new instance with copied data.

        Thread-safe: acquires lock during copy to prevent concurrent modifications.
        The diagnostic callback is shared, not copied.
        """
        import copy

        with self._lock:
            new_index = HierarchyIndex.__new__(HierarchyIndex)
            memo[id(self)] = new_index

            new_index._records = copy.deepcopy(self._records, memo)
            # Rebuild the primary table from the copied records so both
            # structures keep pointing at the same objects
            new_index._by_id = {record["id"]: record for record in new_index._records}
            new_index._children = copy.deepcopy(self._children, memo)
            new_index._parents = copy.deepcopy(self._parents, memo)
            # Caches hold references into the old records; start cold
            new_index._descendants_cache = {}
            new_index._ancestors_cache = {}
            new_index._on_diagnostic = self._on_diagnostic

            new_index._lock = threading.RLock()

            return new_index

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._by_id

    # ========== Thread Safety ==========

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Hold lock for multiple operations - provides isolation, NOT rollback.

        Other threads see either none or all of the changes made inside the
        block. If an exception occurs mid-batch, changes already applied stay
        applied. The lock is always released.

        Yields:
            None
        """
        with self._lock:
            yield

    # ========== Index Construction ==========

    def _build_indexes(self) -> None:
        """Build the primary, children and parent tables in two passes.

        Pass one registers every record and drops duplicate ids (first
        occurrence wins) from the shared list in place. Pass two links each
        record to its parent when the parent id resolves; unresolved parents
        are left dangling without a diagnostic.
        """
        kept: list[Record] = []
        for record in self._records:
            record_id = record.get("id")
            if record_id is None:
                self._report(
                    DiagnosticKind.MISSING_ID, None, "build", "Record without an id dropped"
                )
                continue
            if record_id in self._by_id:
                self._report(
                    DiagnosticKind.DUPLICATE_ID,
                    record_id,
                    "build",
                    f"Duplicate record id {record_id!r} dropped",
                )
                continue
            self._by_id[record_id] = record
            self._children[record_id] = []
            kept.append(record)

        if len(kept) != len(self._records):
            self._records[:] = kept

        for record in self._records:
            parent_id = record.get("parent")
            if parent_id is not None and parent_id in self._by_id:
                self._link(record["id"], parent_id)

    def _link(self, record_id: RecordId, parent_id: RecordId) -> None:
        """Attach record_id under parent_id. Caller holds the lock."""
        self._parents[record_id] = parent_id
        self._children[parent_id].append(record_id)

    def _unlink(self, record_id: RecordId) -> RecordId | None:
        """Detach record_id from its resolved parent, returning that parent's id.

        Note: This method assumes the caller holds the lock.
        """
        parent_id = self._parents.pop(record_id, None)
        if parent_id is None:
            return None
        siblings = self._children.get(parent_id)
        if siblings is not None and record_id in siblings:
            siblings.remove(record_id)
        return parent_id

    def _report(
        self,
        kind: DiagnosticKind,
        record_id: Any,
        operation: str,
        message: str,
    ) -> None:
        logger.warning(message)
        if self._on_diagnostic is not None:
            self._on_diagnostic(Diagnostic(kind, record_id, operation, message))

    # ========== Read Operations ==========

    def get_all(self) -> list[Record]:
        """Return the live record list.

        This is the list passed at construction (or the one built from a
        non-list iterable), shared rather than copied. Treat it as read-only;
        mutate through add_item, remove_item and update_item.
        """
        with self._lock:
            return self._records

    def get_item(self, record_id: RecordId) -> Record | None:
        """Get a record by id, or None if not found."""
        with self._lock:
            return self._by_id.get(record_id)

    def has_item(self, record_id: RecordId) -> bool:
        """Check if a record exists. O(1)."""
        with self._lock:
            return record_id in self._by_id

    def get_children(self, record_id: RecordId) -> list[Record]:
        """Get the direct children of a record, in the order they were linked.

        The children table stores ids, so each call builds a new list of
        records: O(number of children), not O(1). Mutating the returned list
        does not affect the index.

        Returns an empty list for unknown and childless ids.
        """
        with self._lock:
            child_ids = self._children.get(record_id)
            if not child_ids:
                return []
            return [self._by_id[child_id] for child_id in child_ids]

    def get_parent(self, record_id: RecordId) -> Record | None:
        """Get the resolved parent record, or None for roots and dangling parents."""
        with self._lock:
            parent_id = self._parents.get(record_id)
            if parent_id is None:
                return None
            return self._by_id.get(parent_id)

    def get_roots(self) -> list[Record]:
        """Get every record without a resolvable parent, in live order."""
        with self._lock:
            return [r for r in self._records if r["id"] not in self._parents]

    def get_all_descendants(self, record_id: RecordId) -> list[Record]:
        """Get every record below record_id, depth-first pre-order.

        Order is child1, child1's descendants, child2, child2's descendants, ...
        The result is cached per id and the cached list itself is returned on
        repeated calls; treat it as read-only.

        If the walk meets a record it has already emitted (a parent cycle), that
        branch is skipped and a CYCLE diagnostic is reported.

        Args:
            record_id: The record whose subtree to collect

        Returns:
            List of descendant records, empty for unknown or childless ids
        """
        with self._lock:
            cached = self._descendants_cache.get(record_id)
            if cached is not None:
                return cached
            if record_id not in self._by_id:
                return []
            result, truncated = self._walk_descendants(record_id)
            if truncated:
                self._report(
                    DiagnosticKind.CYCLE,
                    record_id,
                    "get_all_descendants",
                    f"Parent cycle below record {record_id!r}; descendants truncated",
                )
            self._descendants_cache[record_id] = result
            return result

    def get_all_ancestors(self, record_id: RecordId) -> list[Record]:
        """Get the parent chain of record_id, nearest parent first.

        The record itself is not included; the last element is the topmost
        root. Follows the parent table, so it ignores sibling order. Cached
        per id like get_all_descendants.

        If the chain loops back on itself, the walk stops before the repeat
        and a CYCLE diagnostic is reported.

        Args:
            record_id: The record whose ancestors to collect

        Returns:
            List of ancestor records, empty for unknown ids and roots
        """
        with self._lock:
            cached = self._ancestors_cache.get(record_id)
            if cached is not None:
                return cached
            if record_id not in self._by_id:
                return []
            result, truncated = self._walk_ancestors(record_id)
            if truncated:
                self._report(
                    DiagnosticKind.CYCLE,
                    record_id,
                    "get_all_ancestors",
                    f"Parent cycle above record {record_id!r}; ancestors truncated",
                )
            self._ancestors_cache[record_id] = result
            return result

    def get_level(self, record_id: RecordId) -> int:
        """Depth of a record: 0 for roots and unknown ids."""
        return len(self.get_all_ancestors(record_id))

    def get_path(self, record_id: RecordId) -> list[RecordId]:
        """Materialized path: ids from the topmost root down to record_id inclusive.

        Returns an empty list for unknown ids.
        """
        with self._lock:
            if record_id not in self._by_id:
                return []
            path = [ancestor["id"] for ancestor in reversed(self.get_all_ancestors(record_id))]
            path.append(record_id)
            return path

    def _walk_descendants(self, record_id: RecordId) -> tuple[list[Record], bool]:
        """Collect the subtree of record_id without touching the caches.

        Iterative so deep chains do not hit the recursion limit.

        Note: This method assumes the caller holds the lock.

        Returns:
            Tuple of (descendants in pre-order, True if a cycle was cut)
        """
        result: list[Record] = []
        seen = {record_id}
        truncated = False
        stack = [iter(self._children.get(record_id, ()))]
        while stack:
            child_id = next(stack[-1], _EXHAUSTED)
            if child_id is _EXHAUSTED:
                stack.pop()
                continue
            if child_id in seen:
                truncated = True
                continue
            seen.add(child_id)
            result.append(self._by_id[child_id])
            stack.append(iter(self._children.get(child_id, ())))
        return result, truncated

    def _walk_ancestors(self, record_id: RecordId) -> tuple[list[Record], bool]:
        """Collect the parent chain of record_id without touching the caches.

        Note: This method assumes the caller holds the lock.

        Returns:
            Tuple of (ancestors nearest first, True if a cycle was cut)
        """
        result: list[Record] = []
        seen = {record_id}
        current = self._parents.get(record_id)
        while current is not None:
            if current in seen:
                return result, True
            seen.add(current)
            result.append(self._by_id[current])
            current = self._parents.get(current)
        return result, False

    # ========== Mutations ==========

    def add_item(self, record: Record) -> bool:
        """Add a record to the index.

        The record is appended to the live list. If its parent id resolves it
        is linked as the parent's last child; otherwise it stays a root (or a
        dangling record). A record already present under the same id is kept
        and the new one rejected.

        Args:
            record: The record to add; must carry an ``id``

        Returns:
            True if added, False if the id was missing or already present
        """
        with self._lock:
            record_id = record.get("id")
            if record_id is None:
                self._report(
                    DiagnosticKind.MISSING_ID, None, "add_item", "Record without an id rejected"
                )
                return False
            if record_id in self._by_id:
                self._report(
                    DiagnosticKind.DUPLICATE_ID,
                    record_id,
                    "add_item",
                    f"Record with id {record_id!r} already exists",
                )
                return False

            self._records.append(record)
            self._by_id[record_id] = record
            self._children[record_id] = []

            parent_id = record.get("parent")
            if parent_id is not None and parent_id in self._by_id:
                self._link(record_id, parent_id)

            self._invalidate({record_id, parent_id})
            return True

    def remove_item(self, record_id: RecordId) -> bool:
        """Remove a record and its whole subtree.

        The cascade is unconditional: every descendant goes with the record.
        The live list is filtered in place, so callers holding it see the
        removal.

        Args:
            record_id: The record to remove

        Returns:
            True if removed, False if the id was unknown
        """
        with self._lock:
            if record_id not in self._by_id:
                self._report(
                    DiagnosticKind.UNKNOWN_ID,
                    record_id,
                    "remove_item",
                    f"Record with id {record_id!r} not found",
                )
                return False

            descendants = self.get_all_descendants(record_id)
            doomed = {record_id}
            doomed.update(d["id"] for d in descendants)

            former_parent = self._unlink(record_id)
            self._records[:] = [r for r in self._records if r["id"] not in doomed]
            for doomed_id in doomed:
                self._by_id.pop(doomed_id, None)
                self._children.pop(doomed_id, None)
                self._parents.pop(doomed_id, None)

            self._invalidate(doomed | {former_parent})
            return True

    def update_item(self, record: Record) -> bool:
        """Replace a stored record, moving it if its parent changed.

        The payload is swapped in place in the live list and the primary
        table. When ``parent`` differs from the stored one, the record is
        detached from its old parent and attached as the last child of the new
        parent if that id resolves. Moving to ``parent=None`` makes it a root.
        The record's subtree moves with it.

        Args:
            record: The new version of the record, matched by ``id``

        Returns:
            True if updated, False if the id was missing or unknown
        """
        with self._lock:
            record_id = record.get("id")
            if record_id is None or record_id not in self._by_id:
                self._report(
                    DiagnosticKind.UNKNOWN_ID,
                    record_id,
                    "update_item",
                    f"Record with id {record_id!r} not found",
                )
                return False

            old_parent = self._by_id[record_id].get("parent")
            new_parent = record.get("parent")

            for position, live in enumerate(self._records):
                if live["id"] == record_id:
                    self._records[position] = record
                    break
            self._by_id[record_id] = record

            if old_parent != new_parent:
                self._unlink(record_id)
                if new_parent is not None and new_parent in self._by_id:
                    self._link(record_id, new_parent)

            self._invalidate({record_id, old_parent, new_parent})
            # Ancestor chains below the record run through it
            for descendant in self.get_all_descendants(record_id):
                self._ancestors_cache.pop(descendant["id"], None)
            return True

    def _invalidate(self, affected: set[RecordId | None]) -> None:
        """Drop cached views for each affected id and every ancestor above it.

        Walks the current parent table upward from each id, stopping at a
        root or at the first repeated id.

        Note: This method assumes the caller holds the lock.
        """
        for record_id in affected:
            if record_id is None:
                continue
            self._descendants_cache.pop(record_id, None)
            self._ancestors_cache.pop(record_id, None)
            seen = {record_id}
            current = self._parents.get(record_id)
            while current is not None and current not in seen:
                seen.add(current)
                self._descendants_cache.pop(current, None)
                self._ancestors_cache.pop(current, None)
                current = self._parents.get(current)

    def clear_cache(self) -> None:
        """Drop every cached descendant and ancestor list."""
        with self._lock:
            self._descendants_cache.clear()
            self._ancestors_cache.clear()

    # ========== Inspection ==========

    def stats(self) -> dict[str, Any]:
        """Get index statistics.

        Returns:
            Dict with num_records, num_roots, num_dangling, max_depth,
            cached_descendants and cached_ancestors
        """
        with self._lock:
            roots = [rid for rid in self._by_id if rid not in self._parents]
            dangling = sum(
                1
                for rid in roots
                if self._by_id[rid].get("parent") is not None
            )

            # Breadth-first from the roots; cycle members are never reached
            max_depth = 0
            frontier = list(roots)
            depth = 0
            seen = set(frontier)
            while frontier:
                max_depth = depth
                next_frontier = []
                for rid in frontier:
                    for child_id in self._children.get(rid, ()):
                        if child_id not in seen:
                            seen.add(child_id)
                            next_frontier.append(child_id)
                frontier = next_frontier
                depth += 1

            return {
                "num_records": len(self._by_id),
                "num_roots": len(roots),
                "num_dangling": dangling,
                "max_depth": max_depth,
                "cached_descendants": len(self._descendants_cache),
                "cached_ancestors": len(self._ancestors_cache),
            }

    def validate(self) -> dict[str, Any]:
        """Validate index integrity.

        Checks for:
        - Live list and primary table disagreeing
        - Children and parent tables disagreeing with each other or the records
        - Parent cycles
        - Hot cache entries that differ from a fresh computation

        Dangling parents are reported as warnings, as are records whose parent
        id was added after them and therefore never got linked.

        Returns:
            Dict with 'valid' (bool), 'errors' (list of error descriptions),
            'warnings' (list of warning descriptions) and 'cycles' (list of
            id lists, one per parent cycle)
        """
        with self._lock:
            errors: list[str] = []
            warnings: list[str] = []

            if len(self._records) != len(self._by_id):
                errors.append(
                    f"Live list has {len(self._records)} records but primary table "
                    f"has {len(self._by_id)}"
                )
            for record in self._records:
                if self._by_id.get(record["id"]) is not record:
                    errors.append(f"Live record {record['id']!r} is not the indexed record")

            for record_id in self._by_id:
                if record_id not in self._children:
                    errors.append(f"Record {record_id!r} has no children entry")

            for parent_id, child_ids in self._children.items():
                if parent_id not in self._by_id:
                    errors.append(f"Children table contains non-existent record: {parent_id!r}")
                for child_id in child_ids:
                    if self._parents.get(child_id) != parent_id:
                        errors.append(
                            f"Record {child_id!r} listed under {parent_id!r} "
                            f"but parent table disagrees"
                        )

            for record_id, parent_id in self._parents.items():
                record = self._by_id.get(record_id)
                if record is None:
                    errors.append(f"Parent table contains non-existent record: {record_id!r}")
                    continue
                if record.get("parent") != parent_id:
                    errors.append(
                        f"Record {record_id!r} names parent {record.get('parent')!r} "
                        f"but is linked under {parent_id!r}"
                    )
                if record_id not in self._children.get(parent_id, ()):
                    errors.append(
                        f"Record {record_id!r} missing from children of {parent_id!r}"
                    )

            for record_id, record in self._by_id.items():
                parent_id = record.get("parent")
                if parent_id is None or record_id in self._parents:
                    continue
                if parent_id in self._by_id:
                    warnings.append(
                        f"Record {record_id!r} names parent {parent_id!r}, which exists "
                        f"but was added later and is not linked"
                    )
                else:
                    warnings.append(
                        f"Record {record_id!r} references non-existent parent {parent_id!r}"
                    )

            cycles = self._find_cycles()
            for cycle in cycles:
                errors.append(f"Parent cycle: {' -> '.join(repr(rid) for rid in cycle)}")

            for record_id, cached in self._descendants_cache.items():
                fresh, _ = self._walk_descendants(record_id)
                if [r["id"] for r in cached] != [r["id"] for r in fresh]:
                    errors.append(f"Stale descendant cache for {record_id!r}")
            for record_id, cached in self._ancestors_cache.items():
                fresh, _ = self._walk_ancestors(record_id)
                if [r["id"] for r in cached] != [r["id"] for r in fresh]:
                    errors.append(f"Stale ancestor cache for {record_id!r}")

            return {
                "valid": len(errors) == 0,
                "errors": errors,
                "warnings": warnings,
                "cycles": cycles,
            }

    def _find_cycles(self) -> list[list[RecordId]]:
        """Find every parent cycle, each listed once in walk order.

        Note: This method assumes the caller holds the lock.
        """
        cycles: list[list[RecordId]] = []
        done: set[RecordId] = set()
        for start in self._by_id:
            if start in done:
                continue
            path: list[RecordId] = []
            on_path: set[RecordId] = set()
            current: RecordId | None = start
            while current is not None and current not in done:
                if current in on_path:
                    cycles.append(path[path.index(current):])
                    break
                path.append(current)
                on_path.add(current)
                current = self._parents.get(current)
            done.update(path)
        return cycles

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        """Export to simple dict; records are shallow-copied."""
        with self._lock:
            return {"records": [dict(record) for record in self._records]}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        on_diagnostic: DiagnosticCallback | None = None,
    ) -> "HierarchyIndex":
        """Import from simple dict."""
        return cls(
            [dict(record) for record in data.get("records", [])],
            on_diagnostic=on_diagnostic,
        )
