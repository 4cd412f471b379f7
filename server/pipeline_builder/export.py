"""Export of a DAG snapshot into Databricks-style job metadata."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .dag import NodeRole, Pipeline, parse_pipeline
from .dag.model import Node

JsonDict = Dict[str, Any]

LOGGER = logging.getLogger("pipeline-builder.export")

JOIN_TYPES = {
    "inner": "inner",
    "left": "leftOuter",
    "right": "rightOuter",
    "outer": "fullOuter",
    "full": "fullOuter",
}
CONNECTION_FIELDS = (("host", "host"), ("port", "port"), ("database", "database"),
                     ("username", "username"), ("databaseType", "type"))


def _predecessors(pipeline: Pipeline, node_id: str) -> List[str]:
    """Upstream ids, ``left`` port first, then ``right``, then unnamed ports."""
    rank = {"left": 0, "right": 1}
    incoming = sorted(
        enumerate(pipeline.incoming(node_id)),
        key=lambda item: (rank.get(item[1].target_handle or "", 2), item[0]),
    )
    return [edge.source for _, edge in incoming]


def _connection_details(config: Mapping[str, Any]) -> Optional[JsonDict]:
    details = {out: config[key] for key, out in CONNECTION_FIELDS if key in config}
    return details or None


def _source(node: Node) -> JsonDict:
    config = node.configuration
    entry: JsonDict = {"id": node.node_id}
    if node.kind == "csvSource":
        entry["format"] = "csv"
        entry["table"] = config.get("fileName")
        entry["path"] = config.get("filePath")
    else:
        entry["format"] = "sql"
        entry["table"] = config.get("tableName")
        entry["query"] = config.get("query")
        entry["database"] = config.get("database")
        entry["connectionDetails"] = _connection_details(config)
    return entry


def _transformation(node: Node, predecessors: List[str]) -> JsonDict:
    config = node.configuration
    entry: JsonDict = {
        "id": node.node_id,
        "type": node.kind,
        "predecessor": predecessors[0] if predecessors else None,
    }
    if node.kind == "filter":
        entry["condition"] = {
            "column": config.get("column"),
            "operator": config.get("operator"),
            "value": config.get("value"),
        }
    elif node.kind == "map":
        mappings = [m for m in config.get("mappings") or [] if isinstance(m, Mapping)]
        entry["columns"] = [m.get("sourceColumn") for m in mappings]
        entry["select"] = [m.get("targetColumn") for m in mappings]
    elif node.kind == "join":
        left = predecessors[0] if predecessors else "A"
        right = predecessors[1] if len(predecessors) > 1 else "B"
        left_column = config.get("leftColumn")
        right_column = config.get("rightColumn")
        entry["sources"] = predecessors
        entry["on"] = [
            {
                "left": left,
                "right": right,
                "condition": f"{left}.{left_column} = {right}.{right_column}",
            }
        ]
        entry["joinType"] = JOIN_TYPES.get(str(config.get("joinType", "inner")).lower(), "inner")
    elif node.kind == "groupBy":
        entry["groupColumns"] = config.get("groupColumns", config.get("groupByColumns"))
        entry["aggregations"] = config.get("aggregations")
    elif node.kind == "sort":
        entry["sortColumns"] = config.get("sortColumns")
    return entry


def _target(node: Node, predecessors: List[str]) -> JsonDict:
    config = node.configuration
    entry: JsonDict = {
        "id": node.node_id,
        "predecessor": predecessors[0] if predecessors else None,
    }
    if node.kind == "csvOutput":
        entry["format"] = "csv"
        entry["path"] = config.get("filePath")
        entry["mode"] = "overwrite"
    else:
        entry["format"] = "sql"
        entry["table"] = config.get("tableName")
        entry["database"] = config.get("database")
        entry["mode"] = config.get("writeMode", "overwrite")
        entry["connectionDetails"] = _connection_details(config)
    return entry


def to_databricks_metadata(dag: Mapping[str, Any]) -> JsonDict:
    """
    Describe a saved DAG as ``sources`` / ``transformations`` / ``targets``.

    Each transformation and target names its upstream ``predecessor``; joins
    list both inputs (``left`` port first) and a join condition. Passwords
    are never copied into connection details.
    """
    pipeline = parse_pipeline(dag)
    sources: List[JsonDict] = []
    transformations: List[JsonDict] = []
    targets: List[JsonDict] = []
    for node in pipeline.nodes:
        if node.role is NodeRole.SOURCE:
            sources.append(_source(node))
        elif node.role is NodeRole.TRANSFORM:
            transformations.append(_transformation(node, _predecessors(pipeline, node.node_id)))
        else:
            targets.append(_target(node, _predecessors(pipeline, node.node_id)))

    LOGGER.info(
        "Transformed DAG '%s' to Databricks format with %d sources, %d transformations, %d targets",
        dag.get("name"),
        len(sources),
        len(transformations),
        len(targets),
    )
    return {
        "name": dag.get("name"),
        "description": dag.get("description"),
        "version": dag.get("version"),
        "sources": sources,
        "transformations": transformations,
        "targets": targets,
    }
