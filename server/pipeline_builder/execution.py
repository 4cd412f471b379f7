"""Bindings between the pipeline builder and the external execution engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, Union

from .dag import ExecutionRequest, SinkPolicy, parse_pipeline, serialize

JsonDict = Dict[str, Any]

LOGGER = logging.getLogger("pipeline-builder.execution")


class Executor(Protocol):
    """Collaborator that runs a serialized execution request."""

    def execute(self, request: JsonDict) -> JsonDict:
        ...


class DryRunExecutor:
    """Executor that reports the plan it was given without running any step."""

    def execute(self, request: JsonDict) -> JsonDict:
        summary = summarize_request(request)
        return {
            "success": True,
            "message": f"Dry run: {len(summary['order'])} step(s) planned",
            **summary,
        }


def build_executor(mode: Optional[str]) -> Optional[Executor]:
    mode = (mode or "").strip().lower()
    if mode in ("", "none"):
        return None
    if mode == "dry-run":
        return DryRunExecutor()
    raise ValueError(f"Unknown executor mode '{mode}'. Supported: none/dry-run.")


def prepare_request(
    graph_payload: Mapping[str, Any],
    *,
    policy: Union[SinkPolicy, str, None] = None,
) -> ExecutionRequest:
    """Parse a graph payload and turn it into an execution request."""
    pipeline = parse_pipeline(graph_payload)
    return serialize(pipeline, policy=policy)


def run_pipeline(
    graph_payload: Mapping[str, Any],
    executor: Executor,
    *,
    policy: Union[SinkPolicy, str, None] = None,
) -> Tuple[ExecutionRequest, JsonDict]:
    """Validate, serialize and hand the request to ``executor``.

    The executor's result is returned untouched, including its
    ``{"success": false, "error": ...}`` shape; exceptions it raises propagate.
    """
    request = prepare_request(graph_payload, policy=policy)
    LOGGER.info(
        "Dispatching pipeline nodes=%d edges=%d order=%s",
        len(request.nodes),
        len(request.edges),
        list(request.execution_order),
    )
    result = executor.execute(request.to_dict())
    if isinstance(result, Mapping) and result.get("success") is False:
        LOGGER.warning("Executor reported failure: %s", result.get("error"))
    return request, result


def summarize_request(request: Mapping[str, Any]) -> JsonDict:
    """Produce a JSON-friendly overview of an execution request."""
    nodes = request.get("nodes", [])
    edges = request.get("edges", [])
    targets = {e.get("target") for e in edges}
    origins = {e.get("source") for e in edges}
    kinds = {n.get("id"): n.get("type") for n in nodes}
    order = list(request.get("executionOrder", []))
    return {
        "order": order,
        "steps": [{"id": nid, "type": kinds.get(nid)} for nid in order],
        "sources": [n.get("id") for n in nodes if n.get("id") not in targets],
        "sinks": [n.get("id") for n in nodes if n.get("id") not in origins],
    }
