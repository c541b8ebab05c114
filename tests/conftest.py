"""Shared fixtures for Treeindex tests."""

import random

import pytest

from treeindex import Forest, HierarchyIndex


def sample_data():
    """Reference forest.

    Records (6):
        1 Root
        |-- 2 Child 1
        |   |-- 4 Grandchild 1
        |   |-- 5 Grandchild 2
        |-- 3 Child 2
        6 Root 2
    """
    return [
        {"id": 1, "parent": None, "name": "Root"},
        {"id": 2, "parent": 1, "name": "Child 1"},
        {"id": 3, "parent": 1, "name": "Child 2"},
        {"id": 4, "parent": 2, "name": "Grandchild 1"},
        {"id": 5, "parent": 2, "name": "Grandchild 2"},
        {"id": 6, "parent": None, "name": "Root 2"},
    ]


def generate_records(count: int, seed: int = 42) -> list[dict]:
    """Random forest: 10% roots, every other record under an earlier one."""
    rng = random.Random(seed)
    root_count = max(1, count // 10)
    records = [
        {"id": i, "parent": None, "name": f"Root {i}", "type": "folder"}
        for i in range(root_count)
    ]
    for i in range(root_count, count):
        records.append(
            {
                "id": i,
                "parent": rng.randrange(i),
                "name": f"Item {i}",
                "type": "folder" if rng.random() > 0.7 else "file",
            }
        )
    return records


@pytest.fixture()
def records():
    """Fresh copy of the reference records, shared with the index built from it."""
    return sample_data()


@pytest.fixture()
def diagnostics():
    """List that collects diagnostics from an index's callback."""
    return []


@pytest.fixture()
def index(records, diagnostics):
    """HierarchyIndex over the reference records, reporting into ``diagnostics``."""
    return HierarchyIndex(records, on_diagnostic=diagnostics.append)


@pytest.fixture()
def forest():
    """Forest over the reference records."""
    return Forest(sample_data())


@pytest.fixture()
def make_records():
    """Factory for seeded random forests: ``make_records(count, seed=42)``."""
    return generate_records


@pytest.fixture()
def random_records():
    """500 records with a seeded random shape."""
    return generate_records(500)


@pytest.fixture()
def records_file(tmp_path):
    """Records file containing the reference forest."""
    path = tmp_path / "records.json"
    Forest(sample_data()).save(path)
    return str(path)
