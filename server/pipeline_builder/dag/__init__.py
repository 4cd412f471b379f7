"""Pipeline graph model, validation, ordering and serialization."""

from .errors import (
    CycleDetected,
    DuplicateNode,
    InvalidReference,
    NotFound,
    PipelineError,
    UnknownKind,
    ValidationFailed,
)
from .kinds import REGISTRY, NodeKind, NodeRole, get_kind
from .model import ConfigurationChanged, Edge, Node, Pipeline, Position
from .sequencer import sequence, sequence_pipeline
from .serializer import ExecutionRequest, parse_pipeline, serialize, summarize
from .validator import SinkPolicy, ValidationResult, validate

__all__ = [
    "ConfigurationChanged",
    "CycleDetected",
    "DuplicateNode",
    "Edge",
    "ExecutionRequest",
    "InvalidReference",
    "Node",
    "NodeKind",
    "NodeRole",
    "NotFound",
    "Pipeline",
    "PipelineError",
    "Position",
    "REGISTRY",
    "SinkPolicy",
    "UnknownKind",
    "ValidationFailed",
    "ValidationResult",
    "get_kind",
    "parse_pipeline",
    "sequence",
    "sequence_pipeline",
    "serialize",
    "summarize",
    "validate",
]
