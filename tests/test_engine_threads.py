"""Thread safety tests for HierarchyIndex.

These tests verify that concurrent operations from multiple threads
do not leave the parent, children and primary tables out of step.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from treeindex.engine import HierarchyIndex


class TestHierarchyIndexThreadSafety:
    """Thread safety tests for HierarchyIndex."""

    def test_concurrent_add_no_corruption(self):
        """Multiple threads adding records concurrently should not corrupt data."""
        index = HierarchyIndex([{"id": "root"}])
        num_threads = 10
        records_per_thread = 100
        errors: list[Exception] = []

        def add_records(prefix: str):
            try:
                index.add_item({"id": prefix, "parent": "root"})
                for i in range(records_per_thread):
                    index.add_item({"id": f"{prefix}_{i}", "parent": prefix})
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=add_records, args=(f"T{t}",)) for t in range(num_threads)
        ]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during concurrent add: {errors}"

        expected_count = 1 + num_threads * (records_per_thread + 1)
        assert len(index.get_all()) == expected_count
        assert len(index.get_all_descendants("root")) == expected_count - 1
        for t in range(num_threads):
            assert len(index.get_children(f"T{t}")) == records_per_thread

        validation = index.validate()
        assert validation["valid"], f"Index validation failed: {validation['errors']}"

    def test_concurrent_add_remove_no_crash(self):
        """Interleaved adds and cascading removes should not crash."""
        index = HierarchyIndex([{"id": "root"}])
        errors: list[Exception] = []

        for i in range(100):
            index.add_item({"id": f"initial_{i}", "parent": "root"})
            index.add_item({"id": f"initial_{i}_leaf", "parent": f"initial_{i}"})

        def add_records():
            try:
                for i in range(200):
                    index.add_item({"id": f"add_{i}", "parent": "root"})
            except Exception as e:
                errors.append(e)

        def remove_records():
            try:
                for i in range(100):
                    index.remove_item(f"initial_{i}")
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=add_records),
            threading.Thread(target=remove_records),
        ]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during concurrent operations: {errors}"
        assert len(index.get_all()) == 201
        assert len(index.get_all_descendants("root")) == 200

        validation = index.validate()
        assert validation["valid"], f"Index validation failed: {validation['errors']}"

    def test_concurrent_read_write(self):
        """Readers should never see a child whose ancestor chain disagrees."""
        index = HierarchyIndex([{"id": "a"}, {"id": "b"}])
        errors: list[Exception] = []
        inconsistencies: list[str] = []

        for i in range(50):
            index.add_item({"id": i, "parent": "a"})

        def writer():
            try:
                for i in range(200):
                    target = "b" if i % 2 == 0 else "a"
                    index.update_item({"id": i % 50, "parent": target})
            except Exception as e:
                errors.append(e)

        def reader():
            try:
                for _ in range(200):
                    for root in ("a", "b"):
                        for child in index.get_children(root):
                            ancestors = index.get_all_ancestors(child["id"])
                            # The child may have moved between the two calls,
                            # but its chain must always be a single root
                            if len(ancestors) != 1 or ancestors[0]["id"] not in ("a", "b"):
                                inconsistencies.append(
                                    f"Child {child['id']} has ancestors {ancestors}"
                                )
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=writer),
            threading.Thread(target=reader),
            threading.Thread(target=reader),
        ]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during concurrent read/write: {errors}"
        assert not inconsistencies, f"Inconsistencies detected: {inconsistencies}"
        assert len(index.get_children("a")) + len(index.get_children("b")) == 50

    def test_batch_atomicity(self):
        """Batch operations should be atomic."""
        index = HierarchyIndex()
        errors: list[Exception] = []
        observed_states: list[int] = []

        def batch_writer():
            try:
                for i in range(50):
                    with index.batch():
                        index.add_item({"id": f"batch_{i}_a"})
                        index.add_item({"id": f"batch_{i}_b", "parent": f"batch_{i}_a"})
                        index.add_item({"id": f"batch_{i}_c", "parent": f"batch_{i}_b"})
            except Exception as e:
                errors.append(e)

        def observer():
            try:
                for _ in range(200):
                    observed_states.append(len(index))
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=batch_writer),
            threading.Thread(target=observer),
        ]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during batch operations: {errors}"

        for state in observed_states:
            assert state % 3 == 0, f"Observed non-atomic state: {state} records"

    def test_thread_pool_descendant_queries(self):
        """Concurrent cold descendant queries should agree with a serial walk."""
        records = [{"id": 0}] + [{"id": i, "parent": (i - 1) // 2} for i in range(1, 1023)]
        index = HierarchyIndex(records)
        serial = HierarchyIndex([dict(r) for r in records])

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(index.get_all_descendants, range(64)))

        for record_id, result in zip(range(64), results):
            expected = [r["id"] for r in serial.get_all_descendants(record_id)]
            assert [r["id"] for r in result] == expected
