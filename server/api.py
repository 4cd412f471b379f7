"""FastAPI surface for validating, serializing, executing and storing pipelines."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from pipeline_builder.config import (
    DB_PATH,
    EXECUTOR_MODE,
    HOST,
    LOG_FORMAT,
    PORT,
    SERVICE_NAME,
    SINK_POLICY,
)
from pipeline_builder.dag import (
    CycleDetected,
    PipelineError,
    SinkPolicy,
    ValidationFailed,
    parse_pipeline,
    serialize,
    summarize,
    validate,
)
from pipeline_builder.execution import Executor, build_executor, run_pipeline
from pipeline_builder.persistence import DagStore, SQLiteDagStore

LOGGER = logging.getLogger("pipeline-builder.api")


class PipelinePayload(BaseModel):
    """React Flow graph as posted by the editor."""

    model_config = ConfigDict(extra="allow")

    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)


class DagSnapshot(PipelinePayload):
    name: Optional[str] = None
    description: Optional[str] = None


def get_store(request: Request) -> DagStore:
    return request.app.state.store


def get_executor(request: Request) -> Optional[Executor]:
    return request.app.state.executor


def _error(status_code: int, content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def _rejection(exc: PipelineError) -> JSONResponse:
    if isinstance(exc, ValidationFailed):
        return _error(400, {"error": "Pipeline validation failed", "details": exc.errors})
    if isinstance(exc, CycleDetected):
        return _error(
            400,
            {
                "error": str(exc),
                "details": {"remaining": exc.remaining, "cycle": [list(p) for p in exc.cycle]},
            },
        )
    return _error(400, {"error": "Invalid pipeline", "details": [str(exc)]})


@asynccontextmanager
async def _default_store(app: FastAPI) -> AsyncIterator[None]:
    store = SQLiteDagStore(DB_PATH)
    store.initialize()
    app.state.store = store
    LOGGER.info("Opened DAG store at %s", DB_PATH)
    try:
        yield
    finally:
        store.close()


def create_app(
    store: Optional[DagStore] = None,
    executor: Optional[Executor] = None,
    *,
    sink_policy: Union[SinkPolicy, str] = SINK_POLICY,
) -> FastAPI:
    """Build the API around a DAG store and an optional executor.

    Without an explicit ``store`` the SQLite database at ``DB_PATH`` is opened
    on application startup, not when the app is built.
    """
    policy = SinkPolicy.coerce(sink_policy)
    app = FastAPI(
        title="Data Pipeline Builder API",
        version="0.1.0",
        lifespan=_default_store if store is None else None,
    )
    if store is not None:
        store.initialize()
        app.state.store = store
    app.state.executor = executor
    app.state.sink_policy = policy

    # -- Pipelines ----------------------------------------------------------------
    @app.post("/api/pipeline/validate")
    def validate_pipeline(payload: PipelinePayload, request: Request):
        try:
            pipeline = parse_pipeline(payload.model_dump())
        except PipelineError as exc:
            return _rejection(exc)
        report = validate(pipeline, policy=request.app.state.sink_policy)
        if not report.is_valid:
            LOGGER.warning("Pipeline validation failed: %s", report.errors)
        return {
            "valid": report.is_valid,
            "errors": report.errors,
            "warnings": report.warnings,
            "nodes": summarize(pipeline),
        }

    @app.post("/api/pipeline/serialize")
    def serialize_pipeline(payload: PipelinePayload, request: Request):
        try:
            pipeline = parse_pipeline(payload.model_dump())
            execution_request = serialize(pipeline, policy=request.app.state.sink_policy)
        except PipelineError as exc:
            return _rejection(exc)
        return execution_request.to_dict()

    @app.post("/api/pipeline/execute")
    def execute_pipeline(
        payload: PipelinePayload,
        request: Request,
        executor: Optional[Executor] = Depends(get_executor),
    ):
        if executor is None:
            return _error(503, {"success": False, "error": "No executor is configured"})
        try:
            _, result = run_pipeline(
                payload.model_dump(), executor, policy=request.app.state.sink_policy
            )
        except PipelineError as exc:
            LOGGER.warning("Pipeline rejected before execution: %s", exc)
            return _rejection(exc)
        return result

    @app.get("/api/pipeline/health")
    def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": int(time.time() * 1000),
        }

    # -- Saved DAGs ---------------------------------------------------------------
    @app.post("/api/dags/save")
    def save_dag(dag: DagSnapshot, store: DagStore = Depends(get_store)):
        LOGGER.info("Received DAG save request: %s", dag.name)
        try:
            result = store.save(dag.model_dump())
        except sqlite3.Error as exc:
            LOGGER.exception("Error saving DAG")
            return _error(500, {"success": False, "error": f"Failed to save DAG: {exc}"})
        if not result.get("success"):
            return _error(400, result)
        return result

    @app.get("/api/dags/list")
    def list_dags(store: DagStore = Depends(get_store)):
        try:
            return store.list()
        except sqlite3.Error as exc:
            LOGGER.exception("Error listing DAGs")
            return _error(500, {"error": f"Failed to list DAGs: {exc}"})

    @app.get("/api/dags/load/{filename}")
    def load_dag(filename: str, store: DagStore = Depends(get_store)):
        try:
            result = store.load(filename)
        except sqlite3.Error as exc:
            LOGGER.exception("Error loading DAG: %s", filename)
            return _error(500, {"error": f"Failed to load DAG: {exc}"})
        if result is None:
            return _error(404, {"error": f"DAG '{filename}' was not found."})
        return result

    @app.post("/api/dags/upload")
    async def upload_dag(file: UploadFile = File(...), store: DagStore = Depends(get_store)):
        content = await file.read()
        try:
            result = store.upload(file.filename or "", content)
        except sqlite3.Error as exc:
            LOGGER.exception("Error uploading DAG")
            return _error(500, {"success": False, "error": f"Failed to upload DAG: {exc}"})
        if not result.get("success"):
            return _error(400, result)
        return result

    @app.delete("/api/dags/delete/{filename}")
    def delete_dag(filename: str, store: DagStore = Depends(get_store)):
        try:
            result = store.delete(filename)
        except sqlite3.Error as exc:
            LOGGER.exception("Error deleting DAG")
            return _error(500, {"error": f"Failed to delete DAG: {exc}"})
        if result is None:
            return _error(404, {"error": f"DAG '{filename}' was not found."})
        return result

    @app.post("/api/dags/export-metadata")
    def export_dag_metadata(dag: DagSnapshot, store: DagStore = Depends(get_store)):
        LOGGER.info("Exporting DAG metadata for: %s", dag.name)
        try:
            return store.export_metadata(dag.model_dump())
        except PipelineError as exc:
            LOGGER.warning("Error exporting DAG metadata: %s", exc)
            return _error(
                400,
                {"success": False, "error": f"Failed to export DAG metadata: {exc}"},
            )

    return app


app = create_app(executor=build_executor(EXECUTOR_MODE))


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    uvicorn.run(app, host=HOST, port=PORT)
