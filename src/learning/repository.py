"""Durable key-indexed storage for interactions, hypotheses, patterns, notifications."""

import copy
import json
import re
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog

from db import ensure_payload_table, wal_session

logger = structlog.get_logger()

# Collection -> timestamp field indexed alongside the JSON payload
COLLECTIONS: dict[str, str] = {
    "interactions": "timestamp",
    "hypotheses": "created_at",
    "patterns": "confirmed_at",
    "notifications": "created_at",
}

_FIELD_RE = re.compile(r"^[a-z_][a-z0-9_]*(\.[a-z_][a-z0-9_]*)*$")


def _check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}. Must be one of {sorted(COLLECTIONS)}")
    return collection


def _check_field(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"Invalid field path: {field!r}")
    return field


class LearningRepository(Protocol):
    """Store contract the engine depends on. Records are plain dicts keyed by "id"."""

    def get(self, collection: str, record_id: str) -> Optional[dict]: ...

    def put(self, collection: str, record: dict) -> None: ...

    def bulk_put(self, collection: str, records: list[dict]) -> None: ...

    def delete(self, collection: str, record_id: str) -> None: ...

    def query_by_field(self, collection: str, field: str, value: Any) -> list[dict]: ...

    def all(self, collection: str) -> list[dict]: ...


class SQLiteRepository:
    """One id + JSON payload table per collection, WAL mode."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with wal_session(self.db_path) as conn:
            for table, time_column in COLLECTIONS.items():
                ensure_payload_table(conn, table, time_column)

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        table = _check_collection(collection)
        with wal_session(self.db_path) as conn:
            row = conn.execute(f"SELECT payload FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return json.loads(row[0]) if row else None

    def put(self, collection: str, record: dict) -> None:
        self.bulk_put(collection, [record])

    def bulk_put(self, collection: str, records: list[dict]) -> None:
        table = _check_collection(collection)
        if not records:
            return
        time_column = COLLECTIONS[table]
        rows = [(r["id"], r.get(time_column), json.dumps(r)) for r in records]
        with wal_session(self.db_path) as conn:
            conn.executemany(
                f"""INSERT INTO {table} (id, {time_column}, payload) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        {time_column}=excluded.{time_column}, payload=excluded.payload""",
                rows,
            )

    def delete(self, collection: str, record_id: str) -> None:
        table = _check_collection(collection)
        with wal_session(self.db_path) as conn:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))

    def query_by_field(self, collection: str, field: str, value: Any) -> list[dict]:
        table = _check_collection(collection)
        path = "$." + _check_field(field)
        if isinstance(value, bool):
            value = int(value)
        time_column = COLLECTIONS[table]
        with wal_session(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT payload FROM {table} WHERE json_extract(payload, ?) = ? ORDER BY {time_column}",
                (path, value),
            ).fetchall()
        return [json.loads(r[0]) for r in rows]

    def all(self, collection: str) -> list[dict]:
        table = _check_collection(collection)
        time_column = COLLECTIONS[table]
        with wal_session(self.db_path) as conn:
            rows = conn.execute(f"SELECT payload FROM {table} ORDER BY {time_column}").fetchall()
        return [json.loads(r[0]) for r in rows]

    def count(self, collection: str) -> int:
        table = _check_collection(collection)
        with wal_session(self.db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class InMemoryRepository:
    """Dict-backed repository for tests and throwaway sessions."""

    def __init__(self):
        self._data: dict[str, dict[str, dict]] = {name: {} for name in COLLECTIONS}

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        record = self._data[_check_collection(collection)].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def put(self, collection: str, record: dict) -> None:
        self._data[_check_collection(collection)][record["id"]] = copy.deepcopy(record)

    def bulk_put(self, collection: str, records: list[dict]) -> None:
        for record in records:
            self.put(collection, record)

    def delete(self, collection: str, record_id: str) -> None:
        self._data[_check_collection(collection)].pop(record_id, None)

    def query_by_field(self, collection: str, field: str, value: Any) -> list[dict]:
        keys = _check_field(field).split(".")
        return [r for r in self.all(collection) if _lookup(r, keys) == value]

    def all(self, collection: str) -> list[dict]:
        time_field = COLLECTIONS[_check_collection(collection)]
        records = [copy.deepcopy(r) for r in self._data[collection].values()]
        return sorted(records, key=lambda r: r.get(time_field) or "")

    def count(self, collection: str) -> int:
        return len(self._data[_check_collection(collection)])


def _lookup(record: dict, keys: list[str]) -> Any:
    current: Any = record
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
