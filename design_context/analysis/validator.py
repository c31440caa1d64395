"""Bundle validation rules (pure Python, no side effects).

Levels:
- minimal: referential integrity. Every id in every sub-list must exist
  in ``registrySummary.nodes``; violations are errors and make the
  bundle invalid.
- standard: + value ranges (confidence in [0, 1], non-negative sizes and
  numeric token values) and cardinality (no token without references,
  usageCount equal to the reference count). Warnings only.
- strict: + child bounds overflowing the parent (2px tolerance) and
  duplicate sibling names. Warnings only.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .. import settings
from ..errors import IssueSeverity, WarningImpact, WarningKind
from ..models import ContextBundle, NodeSummary, PipelineWarning, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

VALIDATION_LEVELS = ("minimal", "standard", "strict")

_STAGE = "validate"

# Child may exceed its parent by this much before it counts as overflow
BOUNDS_TOLERANCE = 2.0

# Keys inside structured token values that must not be negative
_NON_NEGATIVE_VALUE_KEYS = ("fontSize", "width", "radius", "blur")


class Validator:
    def __init__(self, level: Optional[str] = None):
        level = level or settings.VALIDATION_LEVEL
        if level not in VALIDATION_LEVELS:
            raise ValueError(f"Unknown validation level {level!r}; expected one of {VALIDATION_LEVELS}")
        self.level = level

    def validate(self, bundle: ContextBundle) -> ValidationResult:
        known = bundle.registry_summary.node_ids()
        errors = list(self._referential_integrity(bundle, known))
        warnings: List[PipelineWarning] = []

        if self.level in ("standard", "strict"):
            warnings.extend(self._value_ranges(bundle))
            warnings.extend(self._cardinality(bundle))
        if self.level == "strict":
            warnings.extend(self._bounds_overflow(bundle.registry_summary.nodes))
            warnings.extend(self._duplicate_sibling_names(bundle.registry_summary.nodes))

        if errors:
            logger.warning(
                "Validator [%s]: %d referential errors, %d warnings",
                self.level, len(errors), len(warnings),
            )
        else:
            logger.info("Validator [%s]: valid, %d warnings", self.level, len(warnings))
        return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    # ------------------------------------------------------------------
    # Referential integrity
    # ------------------------------------------------------------------

    @staticmethod
    def _referential_integrity(bundle: ContextBundle, known: FrozenSet[str]) -> Iterable[ValidationIssue]:
        for path, node_id in _referenced_ids(bundle):
            if node_id not in known:
                yield ValidationIssue(
                    code="dangling_reference",
                    message=f"{path} references node {node_id!r} which is not in the registry",
                    path=path,
                    severity=IssueSeverity.CRITICAL,
                )

    # ------------------------------------------------------------------
    # Value ranges
    # ------------------------------------------------------------------

    @staticmethod
    def _value_ranges(bundle: ContextBundle) -> Iterable[PipelineWarning]:
        for i, annotation in enumerate(bundle.annotations):
            if not 0.0 <= annotation.confidence <= 1.0:
                yield _warning(
                    "confidence_out_of_range",
                    f"annotations[{i}].confidence={annotation.confidence} outside [0, 1]",
                    [annotation.node_id],
                )
        for i, layout in enumerate(bundle.layouts):
            if not 0.0 <= layout.confidence <= 1.0:
                yield _warning(
                    "confidence_out_of_range",
                    f"layouts[{i}].confidence={layout.confidence} outside [0, 1]",
                    [layout.container_id],
                )
        for node in bundle.registry_summary.nodes:
            if node.bounds.width < 0 or node.bounds.height < 0:
                yield _warning(
                    "negative_size",
                    f"Node {node.id!r} has negative size {node.bounds.width}x{node.bounds.height}",
                    [node.id],
                )
        for token in bundle.tokens:
            for label, amount in _numeric_parts(token.value):
                if amount < 0:
                    yield _warning(
                        "negative_token_value",
                        f"Token {token.id!r} has negative {label}={amount}",
                        list(token.reference_node_ids[:1]),
                        impact=WarningImpact.LOW,
                    )

    # ------------------------------------------------------------------
    # Cardinality
    # ------------------------------------------------------------------

    @staticmethod
    def _cardinality(bundle: ContextBundle) -> Iterable[PipelineWarning]:
        for token in bundle.tokens:
            if not token.reference_node_ids:
                yield _warning(
                    "token_without_references",
                    f"Token {token.id!r} has no referencing nodes",
                    impact=WarningImpact.HIGH,
                )
            elif token.usage_count != len(token.reference_node_ids):
                yield _warning(
                    "usage_count_mismatch",
                    f"Token {token.id!r} usageCount={token.usage_count} but "
                    f"{len(token.reference_node_ids)} references",
                    list(token.reference_node_ids[:1]),
                )

    # ------------------------------------------------------------------
    # Strict-only checks
    # ------------------------------------------------------------------

    @staticmethod
    def _bounds_overflow(nodes: Tuple[NodeSummary, ...]) -> Iterable[PipelineWarning]:
        """Check if child bounds exceed parent bounds (2px tolerance)."""
        by_id = {n.id: n for n in nodes}
        for node in nodes:
            parent = by_id.get(node.parent_id) if node.parent_id else None
            if parent is None:
                continue
            pb, cb = parent.bounds, node.bounds
            # Boundless parents (pages, synthetic root) and empty children are skipped
            if pb.width <= 0 or pb.height <= 0 or cb.width <= 0 or cb.height <= 0:
                continue
            overflow = (
                cb.x + BOUNDS_TOLERANCE < pb.x
                or cb.y + BOUNDS_TOLERANCE < pb.y
                or cb.x + cb.width > pb.x + pb.width + BOUNDS_TOLERANCE
                or cb.y + cb.height > pb.y + pb.height + BOUNDS_TOLERANCE
            )
            if overflow:
                yield _warning(
                    "bounds_overflow",
                    f"bounds ({cb.x},{cb.y},{cb.width}x{cb.height}) of {node.id!r} exceeds "
                    f"parent {parent.id!r} ({pb.x},{pb.y},{pb.width}x{pb.height})",
                    [node.id, parent.id],
                    impact=WarningImpact.LOW,
                )

    @staticmethod
    def _duplicate_sibling_names(nodes: Tuple[NodeSummary, ...]) -> Iterable[PipelineWarning]:
        siblings: Dict[Tuple[Optional[str], str], List[str]] = defaultdict(list)
        for node in nodes:
            if node.name:
                siblings[(node.parent_id, node.name)].append(node.id)
        for (parent_id, name), ids in siblings.items():
            if len(ids) > 1:
                yield _warning(
                    "duplicate_sibling_name",
                    f"{len(ids)} children of {parent_id!r} share the name {name!r}",
                    ids,
                    impact=WarningImpact.LOW,
                )


def _referenced_ids(bundle: ContextBundle) -> Iterable[Tuple[str, str]]:
    """(path, node id) for every node id referenced by the bundle."""
    for i, token in enumerate(bundle.tokens):
        for j, node_id in enumerate(token.reference_node_ids):
            yield f"tokens[{i}].referenceNodeIds[{j}]", node_id
    for i, rel in enumerate(bundle.components):
        yield f"components[{i}].instanceId", rel.instance_id
        yield f"components[{i}].masterId", rel.master_id
        if rel.component_set_id is not None:
            yield f"components[{i}].componentSetId", rel.component_set_id
        for j, override in enumerate(rel.overrides):
            yield f"components[{i}].overrides[{j}].nodeId", override.node_id
    for i, group in enumerate(bundle.variant_groups):
        yield f"variantGroups[{i}].componentSetId", group.component_set_id
        for j, master_id in enumerate(group.master_ids):
            yield f"variantGroups[{i}].masterIds[{j}]", master_id
    for i, layout in enumerate(bundle.layouts):
        yield f"layouts[{i}].containerId", layout.container_id
        for j, node_id in enumerate(layout.participant_node_ids):
            yield f"layouts[{i}].participantNodeIds[{j}]", node_id
    for i, flow in enumerate(bundle.flows):
        yield f"flows[{i}].sourceNodeId", flow.source_node_id
        yield f"flows[{i}].targetNodeId", flow.target_node_id
    for i, annotation in enumerate(bundle.annotations):
        yield f"annotations[{i}].nodeId", annotation.node_id
    for i, node_id in enumerate(bundle.transparent_node_ids):
        yield f"transparentNodeIds[{i}]", node_id
    for i, usage in enumerate(bundle.component_usage.usages):
        yield f"componentUsage.usages[{i}].masterId", usage.master_id
        for j, node_id in enumerate(usage.instance_ids):
            yield f"componentUsage.usages[{i}].instanceIds[{j}]", node_id
    if bundle.accessibility is not None:
        for i, check in enumerate(bundle.accessibility.text_checks):
            yield f"accessibility.textChecks[{i}].nodeId", check.node_id
            yield f"accessibility.textChecks[{i}].backgroundNodeId", check.background_node_id


def _numeric_parts(value: Any) -> List[Tuple[str, float]]:
    if isinstance(value, bool):
        return []
    if isinstance(value, (int, float)):
        return [("value", float(value))]
    if isinstance(value, dict):
        return [
            (key, float(value[key]))
            for key in _NON_NEGATIVE_VALUE_KEYS
            if isinstance(value.get(key), (int, float)) and not isinstance(value.get(key), bool)
        ]
    return []


def _warning(
    code: str,
    message: str,
    node_ids: Optional[List[str]] = None,
    impact: WarningImpact = WarningImpact.MEDIUM,
) -> PipelineWarning:
    return PipelineWarning(
        kind=WarningKind.VALIDATION,
        code=code,
        message=message,
        stage=_STAGE,
        node_ids=tuple(node_ids or ()),
        impact=impact,
    )
