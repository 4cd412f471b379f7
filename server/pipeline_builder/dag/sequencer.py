"""Deterministic topological ordering of a pipeline (Kahn's algorithm)."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import networkx as nx

from .errors import CycleDetected, InvalidReference, PipelineError
from .model import Edge, Node, Pipeline

LOGGER = logging.getLogger("pipeline-builder.dag")

NodeRef = Union[Node, str]
EdgeRef = Union[Edge, Tuple[str, str]]


def _node_id(node: NodeRef) -> str:
    return node.node_id if isinstance(node, Node) else str(node)


def _endpoints(edge: EdgeRef) -> Tuple[str, str]:
    if isinstance(edge, Edge):
        return edge.source, edge.target
    source, target = edge
    return str(source), str(target)


def sequence(nodes: Iterable[NodeRef], edges: Iterable[EdgeRef]) -> List[str]:
    """
    Return node ids in a valid execution order.

    Ties break by insertion order: roots are queued in node order and
    successors are queued as their in-degree drops to zero, walking edges in
    the order they were added. Parallel edges each count toward in-degree.

    Raises ``CycleDetected`` when no full linearization exists; the error
    carries the undrained ids and one sample cycle.
    """
    order: List[str] = [_node_id(n) for n in nodes]
    if len(set(order)) != len(order):
        raise PipelineError("Duplicate node ids in pipeline.")

    successors: Dict[str, List[str]] = {nid: [] for nid in order}
    in_degree: Dict[str, int] = {nid: 0 for nid in order}
    pairs = [_endpoints(e) for e in edges]
    for source, target in pairs:
        missing = [n for n in (source, target) if n not in successors]
        if missing:
            raise InvalidReference(source, target, missing)
        successors[source].append(target)
        in_degree[target] += 1

    queue = deque(nid for nid in order if in_degree[nid] == 0)
    result: List[str] = []
    while queue:
        nid = queue.popleft()
        result.append(nid)
        for successor in successors[nid]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    if len(result) != len(order):
        drained = set(result)
        remaining = [nid for nid in order if nid not in drained]
        cycle = _sample_cycle(remaining, pairs)
        LOGGER.warning(
            "Cycle detected; %d node(s) could not be ordered: %s",
            len(remaining),
            remaining,
        )
        raise CycleDetected(remaining, cycle)

    return result


def sequence_pipeline(pipeline: Pipeline) -> List[str]:
    return sequence(pipeline.nodes, pipeline.edges)


def _sample_cycle(
    remaining: Sequence[str], pairs: Sequence[Tuple[str, str]]
) -> List[Tuple[str, str]]:
    keep = set(remaining)
    graph = nx.DiGraph()
    graph.add_nodes_from(remaining)
    graph.add_edges_from((u, v) for u, v in pairs if u in keep and v in keep)
    try:
        found = nx.find_cycle(graph, orientation="original")
    except nx.NetworkXNoCycle:
        return []
    return [(u, v) for u, v, *_ in found]
