"""Conversion between the Pipeline aggregate and its JSON wire forms."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import PipelineError, ValidationFailed
from .kinds import REGISTRY, NodeKind
from .model import UI_FIELDS, Edge, Node, Pipeline, strip_callables
from .sequencer import sequence
from .validator import SinkPolicy, validate

LOGGER = logging.getLogger("pipeline-builder.dag")

JsonDict = Dict[str, Any]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _freeze(value: Any) -> Any:
    """Read-only deep copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return copy.deepcopy(value)


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return copy.deepcopy(value)


@dataclass(frozen=True)
class ExecutionRequest:
    """Immutable snapshot handed to the executor.

    ``nodes`` and ``edges`` are read-only views; ``to_dict`` returns plain
    mutable copies for the wire.
    """

    nodes: Tuple[Mapping[str, Any], ...]
    edges: Tuple[Mapping[str, Any], ...]
    execution_order: Tuple[str, ...]
    created: str

    @property
    def metadata(self) -> JsonDict:
        return {
            "created": self.created,
            "nodeCount": len(self.nodes),
            "edgeCount": len(self.edges),
        }

    def to_dict(self) -> JsonDict:
        return {
            "nodes": _thaw(self.nodes),
            "edges": _thaw(self.edges),
            "executionOrder": list(self.execution_order),
            "metadata": self.metadata,
        }

    def to_json(self) -> str:
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )


def project_node(node: Node) -> JsonDict:
    data: JsonDict = {}
    if node.label is not None:
        data["label"] = node.label
    data.update(strip_callables(node.configuration))
    data["configured"] = node.configured
    return {
        "id": node.node_id,
        "type": node.kind,
        "position": node.position.as_dict(),
        "data": data,
    }


def project_edge(edge: Edge) -> JsonDict:
    return edge.as_dict()


def serialize(
    pipeline: Pipeline,
    *,
    policy: Union[SinkPolicy, str, None] = None,
    clock: Clock = _utc_now,
) -> ExecutionRequest:
    """
    Validate, order and project ``pipeline`` into an ``ExecutionRequest``.

    Raises ``ValidationFailed`` with every validation error, or
    ``CycleDetected`` when the graph has no topological order.
    """
    report = validate(pipeline, policy=policy)
    if not report.is_valid:
        LOGGER.warning("Pipeline validation failed: %s", report.errors)
        raise ValidationFailed(report.errors)
    for warning in report.warnings:
        LOGGER.info("Pipeline validation warning: %s", warning)

    order = sequence(pipeline.nodes, pipeline.edges)
    request = ExecutionRequest(
        nodes=tuple(_freeze(project_node(n)) for n in pipeline.nodes),
        edges=tuple(_freeze(project_edge(e)) for e in pipeline.edges),
        execution_order=tuple(order),
        created=_iso_timestamp(clock()),
    )
    LOGGER.debug(
        "Serialized pipeline nodes=%d edges=%d order=%s",
        len(request.nodes),
        len(request.edges),
        order,
    )
    return request


# ================================
# Payload -> Pipeline
# ================================
def _extract_kind(raw: Mapping[str, Any], data: Mapping[str, Any]) -> Optional[str]:
    return raw.get("type") or raw.get("kind") or data.get("kind") or data.get("type")


def _extract_data(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    data = raw.get("data")
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise PipelineError(f"Node '{raw.get('id')}' data must be a dict.")
    return data


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _container(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    for key in ("pipeline", "dag"):
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            return nested
    return payload


def parse_pipeline(
    payload: Mapping[str, Any],
    registry: Mapping[str, NodeKind] = REGISTRY,
) -> Pipeline:
    """
    Rebuild a Pipeline from a React Flow export, an execution request or a
    saved DAG snapshot.

    Supported layouts:
    - Top-level: { "nodes": [...], "edges": [...] }
    - Nested: { "pipeline": {...} } or { "dag": {...} }

    Canvas-only entries (``label``, ``configured``, callbacks) are not kept
    as configuration; ``configured`` is re-derived from the schema.
    """
    if not isinstance(payload, Mapping):
        raise PipelineError("Pipeline payload must be a JSON object.")
    container = _container(payload)
    raw_nodes = container.get("nodes")
    raw_edges = container.get("edges")
    raw_nodes = [] if raw_nodes is None else raw_nodes
    raw_edges = [] if raw_edges is None else raw_edges
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise PipelineError("Pipeline 'nodes' and 'edges' must be lists.")

    pipeline = Pipeline(registry)
    for raw in raw_nodes:
        if not isinstance(raw, Mapping):
            raise PipelineError("Each node must be a JSON object.")
        node_id = raw.get("id")
        if _blank(node_id):
            raise PipelineError("Each node must have a non-empty string 'id'.")
        data = _extract_data(raw)
        label = data.get("label")
        configuration = {
            key: value
            for key, value in strip_callables(data).items()
            if key not in UI_FIELDS and key not in ("kind", "type")
        }
        pipeline.add_node(
            _extract_kind(raw, data),
            raw.get("position"),
            node_id=str(node_id),
            label=str(label) if label is not None else None,
            configuration=configuration,
        )

    for raw in raw_edges:
        if not isinstance(raw, Mapping):
            raise PipelineError("Each edge must be a JSON object.")
        source, target = raw.get("source"), raw.get("target")
        if _blank(source) or _blank(target):
            raise PipelineError("Each edge must include 'source' and 'target'.")
        edge_id = raw.get("id")
        pipeline.add_edge(
            str(source),
            str(target),
            raw.get("sourceHandle"),
            raw.get("targetHandle"),
            edge_id=None if _blank(edge_id) else str(edge_id),
        )

    return pipeline


def summarize(pipeline: Pipeline) -> List[JsonDict]:
    """Per-node readiness overview used by diagnostics endpoints."""
    return [
        {
            "id": n.node_id,
            "type": n.kind,
            "role": n.role.value,
            "configured": n.configured,
            "missing": n.missing_configuration(),
        }
        for n in pipeline.nodes
    ]
