"""Normalized node model and the ID-indexed NodeRegistry.

The registry is an arena: it owns every NormalizedNode and all
cross-references (parent, children, instance -> master) are plain node
IDs looked up on demand. Instance/master relationships may form cycles,
which stay representable because nothing holds a live object pointer.

Key Components:
- NodeTypeTag: closed set of node types, with an explicit UNKNOWN variant
- NormalizedNode: immutable, uniformly-typed node record
- NodeRegistry: read-only ID -> node mapping plus tree queries
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..models import BoundsModel, NodeSummary, RegistrySummary

logger = logging.getLogger(__name__)


class NodeTypeTag(str, Enum):
    DOCUMENT = "DOCUMENT"
    CANVAS = "CANVAS"
    FRAME = "FRAME"
    GROUP = "GROUP"
    SECTION = "SECTION"
    VECTOR = "VECTOR"
    BOOLEAN_OPERATION = "BOOLEAN_OPERATION"
    STAR = "STAR"
    LINE = "LINE"
    ELLIPSE = "ELLIPSE"
    REGULAR_POLYGON = "REGULAR_POLYGON"
    RECTANGLE = "RECTANGLE"
    TEXT = "TEXT"
    SLICE = "SLICE"
    COMPONENT = "COMPONENT"
    COMPONENT_SET = "COMPONENT_SET"
    INSTANCE = "INSTANCE"
    STICKY = "STICKY"
    SHAPE_WITH_TEXT = "SHAPE_WITH_TEXT"
    CONNECTOR = "CONNECTOR"
    WIDGET = "WIDGET"
    EMBED = "EMBED"
    LINK_UNFURL = "LINK_UNFURL"
    MEDIA = "MEDIA"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_raw(cls, raw_type: object) -> Optional["NodeTypeTag"]:
        """Map a raw type string to a tag. None when unrecognized."""
        if not isinstance(raw_type, str):
            return None
        key = raw_type.strip().upper()
        if key == "UNKNOWN":
            return None
        try:
            return cls(key)
        except ValueError:
            return None


VECTOR_TYPES = frozenset({
    NodeTypeTag.VECTOR, NodeTypeTag.LINE, NodeTypeTag.ELLIPSE, NodeTypeTag.STAR,
    NodeTypeTag.REGULAR_POLYGON, NodeTypeTag.BOOLEAN_OPERATION,
})

CONTAINER_TYPES = frozenset({
    NodeTypeTag.DOCUMENT, NodeTypeTag.CANVAS, NodeTypeTag.FRAME, NodeTypeTag.GROUP,
    NodeTypeTag.SECTION, NodeTypeTag.COMPONENT, NodeTypeTag.COMPONENT_SET,
    NodeTypeTag.INSTANCE,
})


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Bounds:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def to_model(self) -> BoundsModel:
        return BoundsModel(x=self.x, y=self.y, width=self.width, height=self.height)


ZERO_BOUNDS = Bounds()

# 2x3 affine matrix, Figma relativeTransform layout
Transform = Tuple[Tuple[float, float, float], Tuple[float, float, float]]
IDENTITY_TRANSFORM: Transform = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))

# (r, g, b, a), channels in 0-1
RGBA = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Paint:
    type: str
    visible: bool = True
    opacity: float = 1.0
    color: Optional[RGBA] = None
    image_ref: Optional[str] = None

    @property
    def effective_alpha(self) -> float:
        if self.color is None:
            return self.opacity
        return self.color[3] * self.opacity


@dataclass(frozen=True)
class Effect:
    type: str
    visible: bool = True
    radius: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    spread: float = 0.0
    color: Optional[RGBA] = None


@dataclass(frozen=True)
class TypeStyle:
    font_family: str = ""
    font_size: float = 0.0
    font_weight: float = 400.0
    line_height: Optional[float] = None
    letter_spacing: Optional[float] = None


@dataclass(frozen=True)
class NodeStyle:
    """Visual properties captured from the raw record at parse time."""
    fills: Tuple[Paint, ...] = ()
    strokes: Tuple[Paint, ...] = ()
    stroke_weight: float = 0.0
    corner_radius: Optional[float] = None
    corner_radii: Optional[Tuple[float, float, float, float]] = None
    effects: Tuple[Effect, ...] = ()
    typography: Optional[TypeStyle] = None
    layout_mode: Optional[str] = None
    layout_wrap: bool = False
    item_spacing: float = 0.0
    padding: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    opacity: float = 1.0

    @property
    def visible_fills(self) -> Tuple[Paint, ...]:
        return tuple(p for p in self.fills if p.visible)

    @property
    def visible_strokes(self) -> Tuple[Paint, ...]:
        return tuple(p for p in self.strokes if p.visible)

    @property
    def has_border(self) -> bool:
        return self.stroke_weight > 0 and bool(self.visible_strokes)

    @property
    def has_solid_fill(self) -> bool:
        return any(
            p.type == "SOLID" and p.effective_alpha > 0 for p in self.visible_fills
        )


@dataclass(frozen=True)
class ComponentRef:
    """Instance -> master link, by ID only."""
    master_id: Optional[str] = None
    component_set_id: Optional[str] = None
    # (name, value) pairs, raw order
    variant_properties: Tuple[Tuple[str, str], ...] = ()
    # (name, type, value) triples from componentProperties
    component_properties: Tuple[Tuple[str, str, str], ...] = ()
    # (override node id, overridden fields)
    overrides: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()


@dataclass(frozen=True)
class Interaction:
    trigger: str
    destination_id: Optional[str] = None
    navigation: Optional[str] = None
    transition: Optional[str] = None


@dataclass(frozen=True)
class NormalizedNode:
    id: str
    type: NodeTypeTag
    name: str = ""
    visible: bool = True
    locked: bool = False
    bounds: Bounds = ZERO_BOUNDS
    # bounds were absent or partly coerced; geometry is not measurable
    bounds_defaulted: bool = False
    transform: Transform = IDENTITY_TRANSFORM
    parent_id: Optional[str] = None
    child_ids: Tuple[str, ...] = ()
    style_refs: Tuple[Tuple[str, str], ...] = ()
    component_ref: Optional[ComponentRef] = None
    style: NodeStyle = field(default_factory=NodeStyle)
    characters: Optional[str] = None
    interactions: Tuple[Interaction, ...] = ()
    raw_type: str = ""

    @property
    def is_leaf(self) -> bool:
        return not self.child_ids

    @property
    def is_text(self) -> bool:
        return self.type == NodeTypeTag.TEXT


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class NodeRegistry:
    """Read-only arena of normalized nodes, iterated in traversal order.

    Construction takes an already-consistent node list (the parser is
    responsible for repairing dangling references). After construction
    there is no mutation API, so concurrent readers need no locking.
    """

    def __init__(
        self,
        nodes: Iterable[NormalizedNode],
        style_names: Optional[Mapping[str, str]] = None,
    ):
        ordered: Dict[str, NormalizedNode] = {}
        for node in nodes:
            ordered[node.id] = node
        self._nodes: Mapping[str, NormalizedNode] = MappingProxyType(ordered)
        self._roots: Tuple[str, ...] = tuple(
            node_id for node_id, node in ordered.items() if node.parent_id is None
        )
        self._style_names: Mapping[str, str] = MappingProxyType(dict(style_names or {}))
        self._depths: Mapping[str, int] = MappingProxyType(self._compute_depths())

    def _compute_depths(self) -> Dict[str, int]:
        depths: Dict[str, int] = {}
        stack = [(root_id, 0) for root_id in reversed(self._roots)]
        while stack:
            node_id, depth = stack.pop()
            if node_id in depths:
                continue
            depths[node_id] = depth
            node = self._nodes[node_id]
            for child_id in reversed(node.child_ids):
                if child_id in self._nodes:
                    stack.append((child_id, depth + 1))
        return depths

    # -- mapping protocol --

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[NormalizedNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: Optional[str]) -> Optional[NormalizedNode]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def __getitem__(self, node_id: str) -> NormalizedNode:
        return self._nodes[node_id]

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(self._nodes.keys())

    @property
    def roots(self) -> Tuple[str, ...]:
        return self._roots

    @property
    def style_names(self) -> Mapping[str, str]:
        return self._style_names

    # -- tree queries --

    def children(self, node_id: str) -> List[NormalizedNode]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return [self._nodes[c] for c in node.child_ids if c in self._nodes]

    def parent(self, node_id: str) -> Optional[NormalizedNode]:
        node = self._nodes.get(node_id)
        if node is None:
            return None
        return self.get(node.parent_id)

    def depth(self, node_id: str) -> int:
        return self._depths.get(node_id, 0)

    def ancestors(self, node_id: str) -> List[str]:
        """Ancestor IDs, nearest first."""
        result: List[str] = []
        seen = {node_id}
        current = self.parent(node_id)
        while current is not None and current.id not in seen:
            result.append(current.id)
            seen.add(current.id)
            current = self.parent(current.id)
        return result

    def walk(self, root_id: str) -> List[str]:
        """Pre-order IDs of the subtree rooted at root_id (inclusive)."""
        if root_id not in self._nodes:
            return []
        order: List[str] = []
        seen = set()
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                continue
            seen.add(node_id)
            order.append(node_id)
            node = self._nodes[node_id]
            stack.extend(c for c in reversed(node.child_ids) if c in self._nodes)
        return order

    def nodes_of_type(self, *tags: NodeTypeTag) -> List[NormalizedNode]:
        wanted = set(tags)
        return [n for n in self._nodes.values() if n.type in wanted]

    # -- summary --

    def summary(self) -> RegistrySummary:
        counts = Counter(n.type.value for n in self._nodes.values())
        return RegistrySummary(
            node_count=len(self._nodes),
            root_ids=self._roots,
            max_depth=max(self._depths.values(), default=0),
            counts_by_type=dict(sorted(counts.items())),
            component_count=counts.get(NodeTypeTag.COMPONENT.value, 0),
            instance_count=counts.get(NodeTypeTag.INSTANCE.value, 0),
            text_layer_count=counts.get(NodeTypeTag.TEXT.value, 0),
            nodes=tuple(
                NodeSummary(
                    id=n.id,
                    type=n.type.value,
                    name=n.name,
                    parent_id=n.parent_id,
                    depth=self.depth(n.id),
                    bounds=n.bounds.to_model(),
                )
                for n in self._nodes.values()
            ),
        )
