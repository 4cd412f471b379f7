"""Application package for the data pipeline builder service."""

from .config import (
    DAG_VERSION,
    DB_PATH,
    EXECUTOR_MODE,
    HOST,
    PORT,
    SINK_POLICY,
)
from .execution import DryRunExecutor, Executor, build_executor, prepare_request, run_pipeline
from .persistence import DagStore, SQLiteDagStore

__all__ = [
    "DAG_VERSION",
    "DB_PATH",
    "EXECUTOR_MODE",
    "HOST",
    "PORT",
    "SINK_POLICY",
    "DagStore",
    "DryRunExecutor",
    "Executor",
    "SQLiteDagStore",
    "build_executor",
    "prepare_request",
    "run_pipeline",
]
