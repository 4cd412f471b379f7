"""Errors raised by the pipeline graph model, validator and sequencer."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple


class PipelineError(Exception):
    """Base class for invalid graphs, unknown node kinds, bad references, etc."""


class NotFound(PipelineError):
    """A node or edge id does not exist in the pipeline."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} '{entity_id}' does not exist.")
        self.entity = entity
        self.entity_id = entity_id


class InvalidReference(PipelineError):
    """An edge names an endpoint that is not a node of the pipeline."""

    def __init__(self, source: str, target: str, missing: Sequence[str]) -> None:
        super().__init__(
            f"Edge refers to missing node(s) {', '.join(missing)}: {source} -> {target}"
        )
        self.source = source
        self.target = target
        self.missing = list(missing)


class DuplicateNode(PipelineError):
    """An explicit node id is already taken."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Duplicate node id '{node_id}'.")
        self.node_id = node_id


class UnknownKind(PipelineError):
    def __init__(self, kind: Optional[str]) -> None:
        super().__init__(f"Unknown node kind '{kind}'.")
        self.kind = kind


class ValidationFailed(PipelineError):
    """One or more validation checks failed; ``errors`` holds every message."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__("Pipeline validation failed: " + "; ".join(self.errors))


class CycleDetected(PipelineError):
    """No full topological order exists.

    ``remaining`` lists the node ids that could not be drained, in insertion
    order. ``cycle`` is one sample cycle among them as ``(source, target)``
    pairs, or an empty list when none could be extracted.
    """

    def __init__(
        self,
        remaining: Sequence[str],
        cycle: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> None:
        self.remaining = list(remaining)
        self.cycle = list(cycle or [])
        message = "Pipeline contains cycles - this is not allowed"
        if self.cycle:
            path = " -> ".join([u for u, _ in self.cycle] + [self.cycle[-1][1]])
            message += f". Found cycle: {path}"
        super().__init__(message)
