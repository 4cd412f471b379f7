"""Registry of pipeline step kinds, their roles and configuration schemas."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import UnknownKind

ValueCheck = Callable[[Any], bool]


class NodeRole(str, Enum):
    SOURCE = "source"
    TRANSFORM = "transform"
    SINK = "sink"


# ================================
# Value shape checks
# ================================
def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _scalar(value: Any) -> bool:
    """Non-blank string or a real number (booleans are rejected)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return _non_blank(value)


def _one_of(*choices: str) -> ValueCheck:
    allowed = frozenset(choices)
    return lambda value: isinstance(value, str) and value in allowed


def _string_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(_non_blank(v) for v in value)


def _records_with(*keys: str) -> ValueCheck:
    """A list holding at least one mapping whose ``keys`` are all non-blank."""

    def check(value: Any) -> bool:
        if not isinstance(value, list):
            return False
        return any(
            isinstance(item, Mapping) and all(_non_blank(item.get(k)) for k in keys)
            for item in value
        )

    return check


@dataclass(frozen=True)
class Requirement:
    """A required configuration entry; any of ``keys`` may satisfy it."""

    keys: Tuple[str, ...]
    check: ValueCheck = _non_blank

    @property
    def label(self) -> str:
        return " or ".join(self.keys)

    def satisfied_by(self, configuration: Mapping[str, Any]) -> bool:
        return any(
            key in configuration and self.check(configuration[key]) for key in self.keys
        )


def _req(*keys: str, check: ValueCheck = _non_blank) -> Requirement:
    return Requirement(keys=keys, check=check)


@dataclass(frozen=True)
class NodeKind:
    """Declarative node kind with a role, arity constraints and a schema."""

    kind: str
    role: NodeRole
    requirements: Tuple[Requirement, ...] = ()
    min_inputs: int = 0
    max_inputs: Optional[int] = None  # None = unbounded
    input_handles: Tuple[str, ...] = ()

    def missing_configuration(self, configuration: Mapping[str, Any]) -> List[str]:
        return [r.label for r in self.requirements if not r.satisfied_by(configuration)]

    def is_configured(self, configuration: Mapping[str, Any]) -> bool:
        return not self.missing_configuration(configuration)

    def arity_problem(self, n_inputs: int, node_id: str) -> Optional[str]:
        if n_inputs < self.min_inputs:
            return (
                f"Node '{node_id}' (kind='{self.kind}') expects >= {self.min_inputs} input(s); "
                f"got {n_inputs}."
            )
        if self.max_inputs is not None and n_inputs > self.max_inputs:
            return (
                f"Node '{node_id}' (kind='{self.kind}') expects <= {self.max_inputs} input(s); "
                f"got {n_inputs}."
            )
        return None


# ================================
# Registry of node kinds
# ================================
_SQL_SOURCE_REQUIREMENTS = (
    _req("databaseType"),
    _req("tableName", "query"),
)

_KINDS = (
    NodeKind("csvSource", NodeRole.SOURCE, (_req("filePath"),), max_inputs=0),
    NodeKind("sqlSource", NodeRole.SOURCE, _SQL_SOURCE_REQUIREMENTS, max_inputs=0),
    NodeKind("mysqlSource", NodeRole.SOURCE, _SQL_SOURCE_REQUIREMENTS, max_inputs=0),
    NodeKind("postgresqlSource", NodeRole.SOURCE, _SQL_SOURCE_REQUIREMENTS, max_inputs=0),
    NodeKind("sqliteSource", NodeRole.SOURCE, _SQL_SOURCE_REQUIREMENTS, max_inputs=0),
    NodeKind(
        "filter",
        NodeRole.TRANSFORM,
        (_req("column"), _req("operator"), _req("value", check=_scalar)),
        min_inputs=1,
        max_inputs=1,
    ),
    NodeKind(
        "map",
        NodeRole.TRANSFORM,
        (_req("mappings", check=_records_with("sourceColumn", "targetColumn")),),
        min_inputs=1,
        max_inputs=1,
    ),
    NodeKind(
        "groupBy",
        NodeRole.TRANSFORM,
        (
            _req("groupColumns", check=_string_list),
            _req("aggregations", check=_records_with("column", "function")),
        ),
        min_inputs=1,
        max_inputs=1,
    ),
    NodeKind(
        "join",
        NodeRole.TRANSFORM,
        (
            _req("leftColumn"),
            _req("rightColumn"),
            _req("joinType", check=_one_of("inner", "left", "right", "outer", "full")),
        ),
        min_inputs=2,
        max_inputs=2,
        input_handles=("left", "right"),
    ),
    NodeKind(
        "sort",
        NodeRole.TRANSFORM,
        (_req("sortColumns", check=_records_with("column")),),
        min_inputs=1,
        max_inputs=1,
    ),
    NodeKind("csvOutput", NodeRole.SINK, (_req("filePath"),), min_inputs=1, max_inputs=1),
    NodeKind(
        "sqlOutput",
        NodeRole.SINK,
        (_req("tableName"), _req("databaseType")),
        min_inputs=1,
        max_inputs=1,
    ),
)

REGISTRY: Dict[str, NodeKind] = {k.kind: k for k in _KINDS}

DATABASE_SINK_KIND = "sqlOutput"


def get_kind(kind: Optional[str], registry: Mapping[str, NodeKind] = REGISTRY) -> NodeKind:
    if not kind or kind not in registry:
        raise UnknownKind(kind)
    return registry[kind]


def default_label(kind: str) -> str:
    return kind[:1].upper() + kind[1:]
