"""Pydantic models for the ContextBundle wire format.

Every model serializes with camelCase aliases (``referenceNodeIds``,
``primaryIntent``, ...) so the JSON document matches what downstream
template, cache and reporting collaborators read. Models are frozen:
a bundle is built once per extraction request and never mutated.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import IssueSeverity, WarningImpact, WarningKind
from .hashing import canonical_dumps, sha256_hex


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class TokenCategory(str, Enum):
    COLOR = "Color"
    TYPOGRAPHY = "Typography"
    SPACING = "Spacing"
    EFFECT = "Effect"
    BORDER = "Border"


# Output ordering for tokens and health categories
TOKEN_CATEGORY_ORDER: Tuple[TokenCategory, ...] = (
    TokenCategory.COLOR,
    TokenCategory.TYPOGRAPHY,
    TokenCategory.SPACING,
    TokenCategory.EFFECT,
    TokenCategory.BORDER,
)


class LayoutKind(str, Enum):
    GRID = "Grid"
    STACK = "Stack"
    FLOW = "Flow"


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

class PipelineWarning(WireModel):
    """A repaired or tolerated problem. Never fatal."""
    kind: WarningKind
    code: str
    message: str
    stage: Optional[str] = None
    node_ids: Tuple[str, ...] = ()
    impact: WarningImpact = WarningImpact.MEDIUM


class Note(WireModel):
    """Informational message (below warning level)."""
    stage: str
    message: str


class ValidationIssue(WireModel):
    code: str
    message: str
    path: str = ""
    severity: IssueSeverity = IssueSeverity.HIGH


class ValidationResult(WireModel):
    valid: bool = True
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[PipelineWarning, ...] = ()


# ---------------------------------------------------------------------------
# Registry summary
# ---------------------------------------------------------------------------

class BoundsModel(WireModel):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0


class NodeSummary(WireModel):
    id: str
    type: str
    name: str
    parent_id: Optional[str] = None
    depth: int = 0
    bounds: BoundsModel = Field(default_factory=BoundsModel)


class RegistrySummary(WireModel):
    node_count: int = 0
    root_ids: Tuple[str, ...] = ()
    max_depth: int = 0
    counts_by_type: Dict[str, int] = Field(default_factory=dict)
    component_count: int = 0
    instance_count: int = 0
    text_layer_count: int = 0
    nodes: Tuple[NodeSummary, ...] = ()

    def node_ids(self) -> frozenset:
        return frozenset(n.id for n in self.nodes)


# ---------------------------------------------------------------------------
# Extraction facts
# ---------------------------------------------------------------------------

class DesignToken(WireModel):
    id: str
    category: TokenCategory
    name: str
    key: str
    value: Any
    usage_count: int
    reference_node_ids: Tuple[str, ...]


class Override(WireModel):
    node_id: str
    overridden_fields: Tuple[str, ...] = ()


class ComponentRelationship(WireModel):
    instance_id: str
    master_id: str
    component_set_id: Optional[str] = None
    variant_properties: Dict[str, str] = Field(default_factory=dict)
    overrides: Tuple[Override, ...] = ()


class VariantGroup(WireModel):
    component_set_id: str
    name: str
    master_ids: Tuple[str, ...] = ()
    properties: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)


class LayoutPattern(WireModel):
    id: str
    kind: LayoutKind
    container_id: str
    participant_node_ids: Tuple[str, ...]
    confidence: float
    axis: Optional[str] = None
    alignment: Optional[str] = None
    gap: Optional[float] = None
    rows: int = 1
    columns: int = 1
    source: str = "inferred"


class FlowEdge(WireModel):
    source_node_id: str
    target_node_id: str
    trigger: str
    navigation: Optional[str] = None
    transition: Optional[str] = None


class SemanticAnnotation(WireModel):
    node_id: str
    primary_intent: str
    confidence: float
    reasons: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Design health
# ---------------------------------------------------------------------------

class CategoryHealth(WireModel):
    category: TokenCategory
    distinct_values: int
    usages: int
    score: int
    grade: str


class HealthReport(WireModel):
    overall_score: Optional[int] = None
    grade: Optional[str] = None
    categories: Tuple[CategoryHealth, ...] = ()


class ContrastPair(WireModel):
    """WCAG contrast between two opaque palette colours."""
    color_a: str
    color_b: str
    ratio: float
    passes: bool


class TextContrastCheck(WireModel):
    node_id: str
    background_node_id: str
    foreground: str
    background: str
    ratio: float
    required: float
    large_text: bool = False
    passes: bool = True


class AccessibilityReport(WireModel):
    required_ratio: float = 4.5
    palette_pairs: Tuple[ContrastPair, ...] = ()
    palette_violations: int = 0
    text_checks: Tuple[TextContrastCheck, ...] = ()
    text_violations: int = 0
    # visible text with a solid fill but no filled ancestor to measure against
    unchecked_text_node_ids: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Design-system usage
# ---------------------------------------------------------------------------

class ComponentUsage(WireModel):
    master_id: str
    name: str
    component_set_id: Optional[str] = None
    instance_count: int = 0
    instance_ids: Tuple[str, ...] = ()


class DesignSystemUsage(WireModel):
    master_count: int = 0
    used_master_count: int = 0
    # used masters / all masters; 0 when the file has no masters
    coverage: float = 0.0
    usages: Tuple[ComponentUsage, ...] = ()
    unused_master_ids: Tuple[str, ...] = ()
    # most-instantiated masters first
    hotspots: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

class BundleMetadata(WireModel):
    extracted_at: str
    input_hash: str
    pipeline_version: str


class ContextBundle(WireModel):
    """Aggregate root returned by one extraction request."""
    registry_summary: RegistrySummary = Field(default_factory=RegistrySummary)
    tokens: Tuple[DesignToken, ...] = ()
    components: Tuple[ComponentRelationship, ...] = ()
    variant_groups: Tuple[VariantGroup, ...] = ()
    component_usage: DesignSystemUsage = Field(default_factory=DesignSystemUsage)
    layouts: Tuple[LayoutPattern, ...] = ()
    flows: Tuple[FlowEdge, ...] = ()
    annotations: Tuple[SemanticAnnotation, ...] = ()
    # Nodes carrying fully transparent paints (never colour tokens)
    transparent_node_ids: Tuple[str, ...] = ()
    warnings: Tuple[PipelineWarning, ...] = ()
    notes: Tuple[Note, ...] = ()
    health: Optional[HealthReport] = None
    accessibility: Optional[AccessibilityReport] = None
    validation: Optional[ValidationResult] = None
    cancelled: bool = False
    metadata: BundleMetadata

    @property
    def valid(self) -> bool:
        return self.validation.valid if self.validation is not None else True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return canonical_dumps(self.to_dict())

    def content_fingerprint(self) -> str:
        """Hash of the bundle with the extraction timestamp removed."""
        data = self.to_dict()
        data["metadata"].pop("extractedAt", None)
        return sha256_hex(canonical_dumps(data))

    def warnings_of_kind(self, kind: WarningKind) -> List[PipelineWarning]:
        return [w for w in self.warnings if w.kind == kind]
