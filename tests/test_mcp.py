"""Tests for the Treeindex MCP server tools and resources."""

from __future__ import annotations

import pytest

from treeindex import Forest
from treeindex.mcp import server as mcp_server
from treeindex.mcp.server import (
    add_record,
    get_ancestors,
    get_children,
    get_descendants,
    get_path,
    get_record,
    get_stats,
    mcp,
    remove_record,
    stats_resource,
    update_record,
)


@pytest.fixture(autouse=True)
def _patch_client(monkeypatch, records):
    """Patch the module-level _CLIENT with a fresh in-memory Forest for each test."""
    client = Forest(records)
    monkeypatch.setattr(mcp_server, "_CLIENT", client)
    yield client


def ids(result):
    return [r["id"] for r in result["records"]]


class TestQueryTools:
    def test_get_record(self):
        result = get_record(id=1)
        assert result == {"id": 1, "parent": None, "name": "Root"}

    def test_get_record_not_found(self):
        result = get_record(id=999)
        assert result["found"] is False
        assert result["id"] == 999

    def test_get_record_string_id(self, monkeypatch):
        monkeypatch.setattr(mcp_server, "_CLIENT", Forest([{"id": "docs"}]))
        assert get_record(id="docs")["id"] == "docs"

    def test_get_children(self):
        result = get_children(id=1)
        assert result["count"] == 2
        assert ids(result) == [2, 3]

    def test_get_descendants(self):
        result = get_descendants(id=1)
        assert result["count"] == 4
        assert ids(result) == [2, 4, 5, 3]

    def test_get_ancestors(self):
        result = get_ancestors(id=4)
        assert ids(result) == [2, 1]

    def test_get_path(self):
        result = get_path(id=4)
        assert result["path"] == [1, 2, 4]
        assert result["level"] == 2

    def test_get_path_not_found(self):
        assert get_path(id=999)["found"] is False


class TestMutationTools:
    def test_add_record(self):
        result = add_record(id=7, parent=3, properties={"name": "New"})
        assert result["added"] is True
        assert result["record"] == {"id": 7, "parent": 3, "name": "New"}
        assert get_path(id=7)["path"] == [1, 3, 7]

    def test_add_record_duplicate(self):
        result = add_record(id=1)
        assert result["added"] is False
        assert result["reason"] == "duplicate id"

    def test_remove_record(self):
        result = remove_record(id=2)
        assert result == {"removed": True, "records_removed": 3}
        assert get_record(id=4)["found"] is False

    def test_remove_record_unknown(self):
        assert remove_record(id=999) == {"removed": False, "records_removed": 0}

    def test_update_record_moves(self):
        result = update_record(id=4, parent=3, properties={"name": "Moved"})
        assert result["updated"] is True
        assert result["path"] == [1, 3, 4]
        assert ids(get_children(id=2)) == [5]

    def test_update_record_unknown(self):
        result = update_record(id=999)
        assert result["updated"] is False

    def test_mutations_written_to_file(self, monkeypatch, tmp_path):
        path = tmp_path / "records.json"
        monkeypatch.setattr(mcp_server, "_CLIENT", Forest([{"id": 1}], path=path))

        add_record(id=2, parent=1)

        assert Forest.from_file(path).path(2) == [1, 2]


class TestStats:
    def test_get_stats(self):
        result = get_stats()
        assert result == {
            "record_count": 6,
            "root_count": 2,
            "dangling_count": 0,
            "max_depth": 2,
        }

    def test_stats_resource(self):
        text = stats_resource()
        assert "Records: 6" in text
        assert "Max depth: 2" in text


class TestErrors:
    def test_uninitialized_client(self, monkeypatch):
        monkeypatch.setattr(mcp_server, "_CLIENT", None)
        result = get_record(id=1)
        assert result["error"] is True
        assert "not initialized" in result["message"]

    def test_server_instance(self):
        assert mcp.name == "Treeindex"
