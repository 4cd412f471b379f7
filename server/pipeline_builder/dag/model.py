"""In-memory graph model: nodes, edges and the Pipeline aggregate that owns them."""

from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import DuplicateNode, InvalidReference, NotFound, PipelineError
from .kinds import REGISTRY, NodeKind, NodeRole, default_label, get_kind

LOGGER = logging.getLogger("pipeline-builder.dag")

_NUMERIC_SUFFIX = re.compile(r"-(\d+)$")

# Node data entries that belong to the canvas, not to the step configuration.
UI_FIELDS = frozenset({"label", "configured", "onUpdate"})


def strip_callables(value: Any) -> Any:
    """Deep copy of ``value`` with every callable entry removed."""
    if isinstance(value, Mapping):
        return {
            str(k): strip_callables(v) for k, v in value.items() if not callable(v)
        }
    if isinstance(value, (list, tuple)):
        return [strip_callables(v) for v in value if not callable(v)]
    return copy.deepcopy(value)


def _configuration_entries(configuration: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in strip_callables(configuration).items()
        if key not in UI_FIELDS
    }


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def coerce(cls, value: Any) -> "Position":
        if value is None:
            return cls()
        if isinstance(value, Position):
            return value
        try:
            if isinstance(value, Mapping):
                x, y = float(value.get("x", 0.0)), float(value.get("y", 0.0))
            else:
                x, y = (float(v) for v in value)
        except (TypeError, ValueError) as exc:
            raise PipelineError(f"Invalid position: {value!r}") from exc
        # NaN and infinities cannot be written as JSON.
        if not (math.isfinite(x) and math.isfinite(y)):
            raise PipelineError(f"Invalid position: {value!r}")
        return cls(x, y)

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class Node:
    """A pipeline step. ``configured`` is derived from the kind's schema."""

    node_id: str
    node_type: NodeKind
    position: Position = field(default_factory=Position)
    label: Optional[str] = None
    configuration: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.node_type.kind

    @property
    def role(self) -> NodeRole:
        return self.node_type.role

    @property
    def configured(self) -> bool:
        return self.node_type.is_configured(self.configuration)

    def missing_configuration(self) -> List[str]:
        return self.node_type.missing_configuration(self.configuration)


@dataclass(frozen=True)
class Edge:
    """Directed arc: output of ``source`` feeds input of ``target``."""

    edge_id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.edge_id,
            "source": self.source,
            "target": self.target,
            "sourceHandle": self.source_handle,
            "targetHandle": self.target_handle,
        }


@dataclass(frozen=True)
class ConfigurationChanged:
    """Command emitted by a configuration-editing surface."""

    node_id: str
    patch: Mapping[str, Any]


class Pipeline:
    """Aggregate root owning an insertion-ordered set of nodes and edges.

    Edge endpoints are checked on every mutation. Acyclicity and the
    source/sink direction rules are left to validation so a graph can be
    rewired freely while it is being edited.
    """

    def __init__(self, registry: Mapping[str, NodeKind] = REGISTRY) -> None:
        self._registry = registry
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._counter = 0
        self._used_ids: set = set()

    # -- Read access --------------------------------------------------------------
    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFound("Node", node_id) from None

    def get_edge(self, edge_id: str) -> Edge:
        try:
            return self._edges[edge_id]
        except KeyError:
            raise NotFound("Edge", edge_id) from None

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.target == node_id]

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.source == node_id]

    # -- Node mutations -----------------------------------------------------------
    def add_node(
        self,
        kind: str,
        position: Any = None,
        *,
        node_id: Optional[str] = None,
        label: Optional[str] = None,
        configuration: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        node_type = get_kind(kind, self._registry)
        if node_id is None:
            node_id = self._next_node_id(kind)
        elif node_id in self._nodes:
            raise DuplicateNode(node_id)
        self._reserve(node_id)
        node = Node(
            node_id=node_id,
            node_type=node_type,
            position=Position.coerce(position),
            label=label if label is not None else default_label(kind),
            configuration=_configuration_entries(configuration or {}),
        )
        self._nodes[node_id] = node
        LOGGER.debug("Added node %s (kind=%s)", node_id, kind)
        return node

    def update_node_configuration(self, node_id: str, patch: Mapping[str, Any]) -> Node:
        """Merge ``patch`` into the node configuration; ``None`` values drop a key.

        A ``label`` entry renames the node. Other canvas-only entries
        (``configured``, callbacks) are ignored.
        """
        node = self.get_node(node_id)
        patch = strip_callables(patch)
        if "label" in patch:
            label = patch["label"]
            node.label = str(label) if label is not None else default_label(node.kind)
        changed = [key for key in patch if key not in UI_FIELDS]
        for key in changed:
            if patch[key] is None:
                node.configuration.pop(key, None)
            else:
                node.configuration[key] = patch[key]
        LOGGER.debug(
            "Updated configuration of %s keys=%s configured=%s",
            node_id,
            sorted(changed),
            node.configured,
        )
        return node

    def apply(self, command: ConfigurationChanged) -> Node:
        return self.update_node_configuration(command.node_id, command.patch)

    def move_node(self, node_id: str, position: Any) -> Node:
        node = self.get_node(node_id)
        node.position = Position.coerce(position)
        return node

    def delete_node(self, node_id: str) -> None:
        if self._nodes.pop(node_id, None) is None:
            return
        dropped = [eid for eid, e in self._edges.items() if node_id in (e.source, e.target)]
        for edge_id in dropped:
            del self._edges[edge_id]
        LOGGER.debug("Deleted node %s and %d incident edge(s)", node_id, len(dropped))

    # -- Edge mutations -----------------------------------------------------------
    def add_edge(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        *,
        edge_id: Optional[str] = None,
    ) -> Edge:
        missing = [n for n in (source, target) if n not in self._nodes]
        if missing:
            raise InvalidReference(source, target, missing)
        if edge_id is None:
            edge_id = self._next_edge_id(source, target, source_handle, target_handle)
        elif edge_id in self._edges:
            raise PipelineError(f"Duplicate edge id '{edge_id}'.")
        edge = Edge(
            edge_id=edge_id,
            source=source,
            target=target,
            source_handle=source_handle or None,
            target_handle=target_handle or None,
        )
        self._edges[edge_id] = edge
        LOGGER.debug("Added edge %s (%s -> %s)", edge_id, source, target)
        return edge

    def delete_edge(self, edge_id: str) -> None:
        if self._edges.pop(edge_id, None) is not None:
            LOGGER.debug("Deleted edge %s", edge_id)

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()

    # -- Identifiers --------------------------------------------------------------
    def _reserve(self, node_id: str) -> None:
        self._used_ids.add(node_id)
        match = _NUMERIC_SUFFIX.search(node_id)
        if match:
            self._counter = max(self._counter, int(match.group(1)))

    def _next_node_id(self, kind: str) -> str:
        while True:
            self._counter += 1
            candidate = f"{kind}-{self._counter}"
            if candidate not in self._used_ids:
                return candidate

    def _next_edge_id(
        self,
        source: str,
        target: str,
        source_handle: Optional[str],
        target_handle: Optional[str],
    ) -> str:
        src = f"{source}.{source_handle}" if source_handle else source
        tgt = f"{target}.{target_handle}" if target_handle else target
        base = f"{src}-{tgt}"
        candidate, suffix = base, 1
        while candidate in self._edges:
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate
