"""Structural and configuration checks run before a pipeline may be executed."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Union

from .kinds import DATABASE_SINK_KIND, NodeRole
from .model import Pipeline


class SinkPolicy(str, Enum):
    """Which terminal nodes satisfy the "has a sink" rule."""

    ANY_SINK = "any"
    DATABASE_SINK = "database"

    @classmethod
    def coerce(cls, value: Union["SinkPolicy", str, None]) -> "SinkPolicy":
        if value is None:
            return cls.ANY_SINK
        if isinstance(value, SinkPolicy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown sink policy '{value}'. Supported: any/database."
            ) from None


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _ids(nodes) -> str:
    return ", ".join(n.node_id for n in nodes)


def validate(
    pipeline: Pipeline,
    *,
    policy: Union[SinkPolicy, str, None] = None,
) -> ValidationResult:
    """
    Check a pipeline snapshot and collect every problem at once.

    Errors (each reported at most once):
    - the pipeline has no nodes
    - no source-role node
    - no sink-role node (or no ``sqlOutput`` under ``SinkPolicy.DATABASE_SINK``)
    - unconfigured nodes, listed together
    - transform nodes with no incident edge, listed together
    - source nodes with incoming edges / sink nodes with outgoing edges

    Warnings do not affect ``is_valid``: input arity mismatches and edges that
    target a port the node does not declare.

    Cycles are not checked here; the sequencer reports them.
    """
    policy = SinkPolicy.coerce(policy)
    result = ValidationResult()
    nodes = pipeline.nodes
    edges = pipeline.edges

    if not nodes:
        result.errors.append("Pipeline must contain at least one node")

    if not any(n.role is NodeRole.SOURCE for n in nodes):
        result.errors.append("Pipeline must contain at least one source node")

    if policy is SinkPolicy.DATABASE_SINK:
        if not any(n.kind == DATABASE_SINK_KIND for n in nodes):
            result.errors.append("Pipeline must contain at least one SQL output node")
    elif not any(n.role is NodeRole.SINK for n in nodes):
        result.errors.append("Pipeline must contain at least one sink node")

    unconfigured = [n for n in nodes if not n.configured]
    if unconfigured:
        result.errors.append(
            f"{len(unconfigured)} node(s) are not properly configured: {_ids(unconfigured)}"
        )

    connected = {e.source for e in edges} | {e.target for e in edges}
    disconnected = [
        n for n in nodes if n.role is NodeRole.TRANSFORM and n.node_id not in connected
    ]
    if disconnected:
        result.errors.append(f"Disconnected nodes found: {_ids(disconnected)}")

    in_degree = Counter(e.target for e in edges)
    out_degree = Counter(e.source for e in edges)

    fed_sources = [n for n in nodes if n.role is NodeRole.SOURCE and in_degree[n.node_id]]
    if fed_sources:
        result.errors.append(f"Source nodes cannot have incoming edges: {_ids(fed_sources)}")

    leaking_sinks = [n for n in nodes if n.role is NodeRole.SINK and out_degree[n.node_id]]
    if leaking_sinks:
        result.errors.append(f"Sink nodes cannot have outgoing edges: {_ids(leaking_sinks)}")

    orphan_ids = {n.node_id for n in disconnected}
    for node in nodes:
        if node.role is NodeRole.SOURCE or node.node_id in orphan_ids:
            continue
        problem = node.node_type.arity_problem(in_degree[node.node_id], node.node_id)
        if problem:
            result.warnings.append(problem)

    for edge in edges:
        handles = pipeline.get_node(edge.target).node_type.input_handles
        if handles and edge.target_handle not in handles:
            result.warnings.append(
                f"Edge '{edge.edge_id}' targets port '{edge.target_handle}' of "
                f"'{edge.target}'; expected one of: {', '.join(handles)}."
            )

    return result
