"""Persistence layer for saved DAG snapshots.

This module exposes an abstract store plus a SQLite-backed implementation.
Snapshots are keyed by a generated ``filename`` (``<name>_<timestamp>.json``)
so clients that used to address saved DAG files keep the same contract. The
stored payload is the JSON shape the serializer consumes; nothing in here
interprets the graph itself except the metadata export.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, List, Optional

from ..config import DAG_VERSION
from ..export import to_databricks_metadata

JsonDict = Dict[str, Any]

LOGGER = logging.getLogger("pipeline-builder.persistence")

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _deserialize(data: Optional[str]) -> Any:
    if data in (None, "", "null"):
        return None
    return json.loads(data)


def _count(items: Any) -> int:
    return len(items) if isinstance(items, list) else 0


def _failure(message: str) -> JsonDict:
    return {"success": False, "error": message}


class DagStore(ABC):
    """Abstraction boundary for saved DAG operations used by the API."""

    @abstractmethod
    def initialize(self) -> None:
        """Provision tables if required."""

    @abstractmethod
    def reset(self) -> None:
        """Drop every stored snapshot so tests can start from a clean slate."""

    @abstractmethod
    def save(self, dag: JsonDict) -> JsonDict:
        """Persist a named snapshot and report the generated filename."""

    @abstractmethod
    def list(self) -> JsonDict:
        """Return ``{"dags": [...]}`` summaries, newest first."""

    @abstractmethod
    def load(self, filename: str) -> Optional[JsonDict]:
        """Return the stored snapshot or ``None`` when absent."""

    @abstractmethod
    def delete(self, filename: str) -> Optional[JsonDict]:
        """Remove a snapshot; ``None`` when it did not exist."""

    @abstractmethod
    def upload(self, filename: str, content: bytes) -> JsonDict:
        """Store a client-provided JSON document as a snapshot."""

    def export_metadata(self, dag: JsonDict) -> JsonDict:
        metadata = to_databricks_metadata(dag)
        return {
            "success": True,
            "message": "DAG metadata exported successfully",
            "metadata": metadata,
        }


class SQLiteDagStore(DagStore):
    """SQLite implementation that satisfies ``DagStore``."""

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db_path = Path(db_path)
        self._clock = clock
        self._lock = threading.RLock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    # -- Lifecycle ----------------------------------------------------------------
    def initialize(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def reset(self) -> None:
        with self._lock:
            self._conn.close()
            if self.db_path.exists():
                self.db_path.unlink()
            self._conn = self._connect()
        self.initialize()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- Snapshots ----------------------------------------------------------------
    def save(self, dag: JsonDict) -> JsonDict:
        name = dag.get("name")
        if not isinstance(name, str) or not name.strip():
            return _failure("DAG name is required")

        now = self._clock()
        saved_at = now.isoformat()
        safe_name = _UNSAFE_NAME_CHARS.sub("_", name)
        filename = f"{safe_name}_{now.strftime('%Y%m%d_%H%M%S')}.json"

        snapshot = dict(dag)
        snapshot.setdefault("nodeCount", _count(dag.get("nodes")))
        snapshot.setdefault("edgeCount", _count(dag.get("edges")))
        snapshot["savedAt"] = saved_at
        snapshot["version"] = DAG_VERSION
        snapshot["filename"] = filename

        self._upsert(filename, snapshot, saved_at)
        LOGGER.info("DAG saved successfully: %s", filename)
        return {
            "success": True,
            "filename": filename,
            "message": "DAG saved successfully",
            "savedAt": saved_at,
        }

    def list(self) -> JsonDict:
        rows = self._conn.execute(
            """
            SELECT filename, name, description, saved_at, node_count
            FROM dags
            ORDER BY saved_at IS NULL, saved_at DESC, filename ASC
            """
        ).fetchall()
        dags = [
            {
                "filename": row["filename"],
                "name": row["name"],
                "savedAt": row["saved_at"],
                "nodeCount": row["node_count"],
                "description": row["description"],
            }
            for row in rows
        ]
        return {"dags": dags}

    def load(self, filename: str) -> Optional[JsonDict]:
        row = self._conn.execute(
            "SELECT payload FROM dags WHERE filename = ?", (filename,)
        ).fetchone()
        if not row:
            return None
        LOGGER.info("DAG loaded successfully: %s", filename)
        return {
            "success": True,
            "dag": _deserialize(row["payload"]) or {},
            "message": "DAG loaded successfully",
        }

    def delete(self, filename: str) -> Optional[JsonDict]:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM dags WHERE filename = ?", (filename,))
        if cursor.rowcount == 0:
            return None
        LOGGER.info("DAG deleted: %s", filename)
        return {"message": "DAG deleted successfully"}

    def upload(self, filename: str, content: bytes) -> JsonDict:
        if not content:
            return _failure("File is empty")
        original = PurePath(filename or "").name
        if not original.lower().endswith(".json"):
            return _failure("Only JSON files are allowed")
        try:
            dag = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return _failure("Invalid JSON format")
        if not isinstance(dag, dict):
            return _failure("Invalid JSON format")

        stored = f"{int(time.time() * 1000)}_{original}"
        self._upsert(stored, dag, dag.get("savedAt"))
        LOGGER.info("DAG uploaded successfully: %s", stored)
        return {
            "success": True,
            "filename": stored,
            "dag": dag,
            "message": "DAG uploaded and loaded successfully",
        }

    def _upsert(self, filename: str, snapshot: JsonDict, saved_at: Optional[str]) -> None:
        name = snapshot.get("name")
        description = snapshot.get("description")
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO dags (
                    filename, name, description, saved_at, node_count, edge_count, payload
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(filename) DO UPDATE SET
                    name=excluded.name,
                    description=excluded.description,
                    saved_at=excluded.saved_at,
                    node_count=excluded.node_count,
                    edge_count=excluded.edge_count,
                    payload=excluded.payload,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (
                    filename,
                    str(name) if name is not None else None,
                    str(description) if description is not None else None,
                    str(saved_at) if saved_at is not None else None,
                    _count(snapshot.get("nodes")),
                    _count(snapshot.get("edges")),
                    _serialize(snapshot),
                ),
            )


_SCHEMA = """
CREATE TABLE IF NOT EXISTS dags (
    filename TEXT PRIMARY KEY,
    name TEXT,
    description TEXT,
    saved_at TEXT,
    node_count INTEGER DEFAULT 0,
    edge_count INTEGER DEFAULT 0,
    payload TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""
