"""Prototype flow graph from interaction metadata.

Best-effort: interaction data is frequently absent from exported trees.
Absence yields an empty edge list and an informational Note; it is never
a warning and never fails the pipeline.

Two sources are merged:
- node ``reactions`` captured by the parser
- an optional ``raw_interactions`` payload, either a list of entries or a
  dict holding one under ``interactions`` / ``flows``. Entries name their
  endpoints with ``sourceNodeId``/``source`` and
  ``targetNodeId``/``destinationId``/``target``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..cancellation import CancellationToken, checkpoint
from ..errors import WarningImpact, WarningKind
from ..models import FlowEdge, Note, PipelineWarning
from ..nodes.registry import NodeRegistry

logger = logging.getLogger(__name__)

_STAGE = "prototype"

_SOURCE_KEYS = ("sourceNodeId", "source")
_TARGET_KEYS = ("targetNodeId", "destinationId", "target")


@dataclass
class PrototypeResult:
    edges: List[FlowEdge] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    warnings: List[PipelineWarning] = field(default_factory=list)


def _first_str(entry: Dict[str, Any], keys: Tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _normalize_trigger(raw: Any) -> str:
    if isinstance(raw, dict):
        raw = raw.get("type")
    return str(raw or "unknown").strip().lower()


def _optional_lower(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        raw = raw.get("type")
    return str(raw).lower() if raw else None


def _raw_entries(raw_interactions: Any) -> List[Dict[str, Any]]:
    if isinstance(raw_interactions, dict):
        for key in ("interactions", "flows"):
            if isinstance(raw_interactions.get(key), list):
                raw_interactions = raw_interactions[key]
                break
        else:
            return []
    if not isinstance(raw_interactions, list):
        return []
    return [entry for entry in raw_interactions if isinstance(entry, dict)]


class PrototypeMapper:
    """Builds a deduplicated, sorted FlowEdge list."""

    def map(
        self,
        registry: NodeRegistry,
        raw_interactions: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PrototypeResult:
        result = PrototypeResult()
        # (source, target, trigger) -> edge; first occurrence wins
        edges: Dict[Tuple[str, str, str], FlowEdge] = {}
        candidates = 0

        for node in registry:
            checkpoint(cancel_token)
            for interaction in node.interactions:
                if interaction.destination_id is None:
                    continue
                candidates += 1
                self._add(edges, result.warnings, registry, FlowEdge(
                    source_node_id=node.id,
                    target_node_id=interaction.destination_id,
                    trigger=interaction.trigger,
                    navigation=interaction.navigation,
                    transition=interaction.transition,
                ))

        for entry in _raw_entries(raw_interactions):
            checkpoint(cancel_token)
            source = _first_str(entry, _SOURCE_KEYS)
            target = _first_str(entry, _TARGET_KEYS)
            if source is None or target is None:
                result.warnings.append(_warning(
                    "incomplete_flow_entry",
                    "Interaction entry without source or target id skipped",
                    [i for i in (source, target) if i and i in registry],
                    impact=WarningImpact.LOW,
                ))
                continue
            candidates += 1
            self._add(edges, result.warnings, registry, FlowEdge(
                source_node_id=source,
                target_node_id=target,
                trigger=_normalize_trigger(entry.get("trigger")),
                navigation=_optional_lower(entry.get("navigation")),
                transition=_optional_lower(entry.get("transition")),
            ))

        if candidates == 0:
            result.notes.append(Note(
                stage=_STAGE,
                message="No prototype interaction metadata present; flow graph is empty",
            ))

        result.edges = [edges[key] for key in sorted(edges)]
        logger.info(
            "PrototypeMapper: %d candidate interactions -> %d edges",
            candidates, len(result.edges),
        )
        return result

    @staticmethod
    def _add(
        edges: Dict[Tuple[str, str, str], FlowEdge],
        warnings: List[PipelineWarning],
        registry: NodeRegistry,
        edge: FlowEdge,
    ) -> None:
        missing = [i for i in (edge.source_node_id, edge.target_node_id) if i not in registry]
        if missing:
            warnings.append(_warning(
                "dangling_flow_target",
                f"Flow {edge.source_node_id!r} -> {edge.target_node_id!r} "
                f"references unknown node(s) {', '.join(sorted(set(missing)))}; dropped",
                [i for i in (edge.source_node_id, edge.target_node_id) if i in registry],
            ))
            return
        edges.setdefault((edge.source_node_id, edge.target_node_id, edge.trigger), edge)


def _warning(
    code: str,
    message: str,
    node_ids: Optional[List[str]] = None,
    impact: WarningImpact = WarningImpact.MEDIUM,
) -> PipelineWarning:
    return PipelineWarning(
        kind=WarningKind.STRUCTURAL,
        code=code,
        message=message,
        stage=_STAGE,
        node_ids=tuple(node_ids or ()),
        impact=impact,
    )
