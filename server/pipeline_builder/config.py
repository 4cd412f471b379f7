"""Configuration constants and helpers for the pipeline builder service."""

from __future__ import annotations

import os
from pathlib import Path

HOST = os.environ.get("PIPELINE_HOST", "0.0.0.0")
PORT = int(os.environ.get("PIPELINE_PORT", "8080"))

BASE_DIR = Path(__file__).resolve().parent.parent
SQLITE_DIR = BASE_DIR / "sqlite_db"
SQLITE_DIR.mkdir(parents=True, exist_ok=True)
DB_PATH = SQLITE_DIR / "saved_dags.sqlite3"

DAG_VERSION = "1.0"
SERVICE_NAME = "Data Pipeline Builder"

# "any" accepts any sink-role node, "database" demands a sqlOutput node.
SINK_POLICY = os.environ.get("PIPELINE_SINK_POLICY", "any")

LOG_FORMAT = "%(asctime)s | pid=%(process)d | %(levelname)s | %(name)s | %(message)s"

# "dry-run" answers execute requests with the computed plan, "none" disables execution.
EXECUTOR_MODE = os.environ.get("PIPELINE_EXECUTOR", "dry-run")
