"""Benchmark fixtures for hierarchy index performance tests."""

import random

import pytest

from treeindex.engine import HierarchyIndex


def generate_random_forest(
    num_records: int,
    root_ratio: float = 0.1,
    seed: int = 42,
) -> list[dict]:
    """Generate a random forest of records for benchmarking.

    Args:
        num_records: Number of records to create
        root_ratio: Fraction of records that are roots
        seed: Random seed for reproducibility

    Returns:
        List of record dicts; every non-root points at an earlier record
    """
    rng = random.Random(seed)
    root_count = max(1, int(num_records * root_ratio))
    records = [{"id": i, "parent": None, "name": f"Root {i}"} for i in range(root_count)]
    for i in range(root_count, num_records):
        records.append(
            {
                "id": i,
                "parent": rng.randrange(i),
                "name": f"Item {i}",
                "type": rng.choice(["folder", "file"]),
            }
        )
    return records


def generate_binary_tree(num_records: int) -> list[dict]:
    """Heap-shaped tree: record i hangs under i // 2, record 0 is the root."""
    return [
        {"id": i, "parent": None if i == 0 else i // 2, "name": f"Item {i}"}
        for i in range(num_records)
    ]


@pytest.fixture
def forest_10k_records() -> list[dict]:
    """10K records, 1K roots."""
    return generate_random_forest(10000)


@pytest.fixture
def forest_10k(forest_10k_records) -> HierarchyIndex:
    """Index over 10K random records."""
    return HierarchyIndex(forest_10k_records)


@pytest.fixture
def binary_10k() -> HierarchyIndex:
    """10K records in a single heap-shaped tree (depth ~13)."""
    return HierarchyIndex(generate_binary_tree(10000))


@pytest.fixture
def chain_5k() -> HierarchyIndex:
    """5K records in one chain (depth 4999)."""
    return HierarchyIndex(
        [{"id": 0, "parent": None}] + [{"id": i, "parent": i - 1} for i in range(1, 5000)]
    )
