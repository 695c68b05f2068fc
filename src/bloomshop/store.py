"""Transactional document storage for bloomshop."""

import copy
import fcntl
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .errors import InvalidSchemaVersionError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DATA_FILE = "bloomshop.json"
LOCK_FILE = ".bloomshop.lock"

TABLES = (
    "products",
    "addresses",
    "orders",
    "order_items",
    "reviews",
    "wishlist",
)


def _empty_document() -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "sequences": {table: 0 for table in TABLES},
        "tables": {table: {} for table in TABLES},
    }


class Transaction:
    """
    A unit of work over the loaded document.

    Rows are plain dicts keyed by integer id. Reads return copies so callers
    can't mutate stored state without going through update().
    """

    def __init__(self, document: dict[str, Any], read_only: bool = False):
        self._doc = document
        self.read_only = read_only

    def _table(self, table: str) -> dict[str, Any]:
        if table not in TABLES:
            raise KeyError(f"Unknown table: {table}")
        return self._doc["tables"][table]

    def _check_writable(self) -> None:
        if self.read_only:
            raise RuntimeError("Cannot write inside a read-only snapshot")

    def get(self, table: str, row_id: int) -> dict[str, Any] | None:
        row = self._table(table).get(str(row_id))
        return copy.deepcopy(row) if row is not None else None

    def rows(self, table: str) -> list[dict[str, Any]]:
        """All rows of a table in insertion (id) order."""
        return [copy.deepcopy(r) for r in self._table(table).values()]

    def insert(self, table: str, row: dict[str, Any]) -> int:
        """Insert a row, assigning the next id. Returns the id."""
        self._check_writable()
        sequences = self._doc["sequences"]
        sequences[table] = sequences.get(table, 0) + 1
        row_id = sequences[table]
        stored = copy.deepcopy(row)
        stored["id"] = row_id
        self._table(table)[str(row_id)] = stored
        return row_id

    def update(self, table: str, row_id: int, row: dict[str, Any]) -> None:
        self._check_writable()
        rows = self._table(table)
        if str(row_id) not in rows:
            raise KeyError(f"{table} row {row_id} does not exist")
        stored = copy.deepcopy(row)
        stored["id"] = row_id
        rows[str(row_id)] = stored

    def delete(self, table: str, row_id: int) -> None:
        self._check_writable()
        self._table(table).pop(str(row_id), None)


class Database:
    """
    Process-wide handle on the data directory.

    Writers are serialized by an in-process mutex plus an exclusive flock on
    the lock file, so every read-check-write sequence inside transaction() is
    isolated from other threads and processes.
    """

    def __init__(self, data_dir: Path):
        """
        Initialize Database.

        Args:
            data_dir: Directory holding the data and lock files.
        """
        self.data_dir = Path(data_dir)
        self.data_path = self.data_dir / DATA_FILE
        self._lock_path = self.data_dir / LOCK_FILE
        self._mutex = threading.Lock()
        self._lock_file = None

    @property
    def is_open(self) -> bool:
        return self._lock_file is not None

    def open(self) -> "Database":
        if self._lock_file is None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self._lock_file = open(self._lock_path, "w")
            logger.info("Opened store at %s", self.data_dir)
        return self

    def close(self) -> None:
        if self._lock_file is not None:
            self._lock_file.close()
            self._lock_file = None
            logger.info("Closed store at %s", self.data_dir)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if self._lock_file is None:
            raise RuntimeError("Database is not open")
        with self._mutex:
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, Any]:
        if not self.data_path.exists():
            return _empty_document()

        with open(self.data_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        for table in TABLES:
            data["tables"].setdefault(table, {})
            data["sequences"].setdefault(table, 0)
        return data

    def _save(self, data: dict[str, Any]) -> None:
        """Write the document atomically (temp file then rename)."""
        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=".bloomshop_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.data_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a read-modify-write unit of work.

        The document is saved only if the block exits normally; any exception
        discards every change made inside the block and is re-raised.
        """
        with self._locked():
            txn = Transaction(self._load())
            yield txn
            self._save(txn._doc)

    @contextmanager
    def snapshot(self) -> Iterator[Transaction]:
        """Consistent read-only view. Nothing is written back."""
        with self._locked():
            yield Transaction(self._load(), read_only=True)
