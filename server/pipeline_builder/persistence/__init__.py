"""Persistence gateways for saved DAG snapshots."""

from .database import DagStore, SQLiteDagStore

__all__ = ["DagStore", "SQLiteDagStore"]
