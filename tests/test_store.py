"""Tests for the transactional document store."""

import json

import pytest

from bloomshop.errors import InvalidSchemaVersionError
from bloomshop.store import DATA_FILE, Database


class TestDatabase:
    def test_insert_assigns_sequential_ids(self, db):
        with db.transaction() as txn:
            first = txn.insert("products", {"name": "a"})
            second = txn.insert("products", {"name": "b"})

        assert (first, second) == (1, 2)
        with db.snapshot() as txn:
            assert [r["name"] for r in txn.rows("products")] == ["a", "b"]

    def test_ids_not_reused_after_delete(self, db):
        with db.transaction() as txn:
            row_id = txn.insert("products", {"name": "a"})
            txn.delete("products", row_id)
            assert txn.insert("products", {"name": "b"}) == 2

    def test_persists_across_reopen(self, temp_dir):
        with Database(temp_dir) as db:
            with db.transaction() as txn:
                txn.insert("orders", {"total": "1.00"})

        with Database(temp_dir) as db:
            with db.snapshot() as txn:
                assert txn.get("orders", 1)["total"] == "1.00"

    def test_exception_discards_changes(self, db):
        with db.transaction() as txn:
            txn.insert("products", {"name": "kept"})

        with pytest.raises(RuntimeError):
            with db.transaction() as txn:
                txn.update("products", 1, {"name": "changed"})
                txn.insert("products", {"name": "lost"})
                raise RuntimeError("boom")

        with db.snapshot() as txn:
            rows = txn.rows("products")
        assert len(rows) == 1
        assert rows[0]["name"] == "kept"

    def test_reads_return_copies(self, db):
        with db.transaction() as txn:
            txn.insert("products", {"name": "a"})
            row = txn.get("products", 1)
            row["name"] = "mutated"
            assert txn.get("products", 1)["name"] == "a"

    def test_snapshot_is_read_only(self, db):
        with pytest.raises(RuntimeError):
            with db.snapshot() as txn:
                txn.insert("products", {"name": "a"})

    def test_update_missing_row_raises(self, db):
        with pytest.raises(KeyError):
            with db.transaction() as txn:
                txn.update("products", 42, {"name": "x"})

    def test_unknown_table_raises(self, db):
        with pytest.raises(KeyError):
            with db.snapshot() as txn:
                txn.rows("customers")

    def test_closed_database_raises(self, temp_dir):
        db = Database(temp_dir)
        with pytest.raises(RuntimeError):
            with db.snapshot():
                pass

    def test_unsupported_schema_version(self, temp_dir):
        (temp_dir / DATA_FILE).write_text(
            json.dumps({"schema_version": 99, "sequences": {}, "tables": {}})
        )
        with Database(temp_dir) as db:
            with pytest.raises(InvalidSchemaVersionError):
                with db.snapshot():
                    pass

    def test_save_leaves_no_temp_files(self, db):
        with db.transaction() as txn:
            txn.insert("products", {"name": "a"})

        leftovers = [p.name for p in db.data_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []
