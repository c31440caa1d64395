"""Raw node tree -> NodeRegistry normalization.

Reads heterogeneous, partially-inconsistent Figma node records exactly
once and produces an immutable, ID-indexed NodeRegistry plus the list of
structural repairs that were applied.

Repair policy (never throws except on an unusable root):
- unknown / missing ``type`` -> UNKNOWN tag + warning
- missing bounding box -> bounds (0,0,0,0) + warning, flagged bounds_defaulted
- non-numeric x / y -> coerced to 0 + the same warning and flag
- missing id -> synthesized ``__anon_<n>`` id + warning
- duplicate ids -> last write wins + warning citing both occurrences
- declared parent that doesn't exist -> re-parented to a synthetic root
- child given as an id string that doesn't exist -> dropped + warning
- parent links forming a loop -> loop broken at the synthetic root
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from ..errors import MalformedInputError, WarningImpact, WarningKind
from ..models import PipelineWarning
from .figma_utils import (
    as_number,
    extract_bounds,
    extract_transform,
    read_corner_radius,
    read_effects,
    read_paints,
    read_typography,
)
from .registry import (
    ZERO_BOUNDS,
    ComponentRef,
    Interaction,
    NodeRegistry,
    NodeStyle,
    NodeTypeTag,
    NormalizedNode,
)

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT_ID = "__synthetic_root__"
SYNTHETIC_ROOT_NAME = "Synthetic Root"

_STAGE = "parse"

# Figma documents and pages carry no bounding box
_BOUNDLESS_TYPES = frozenset({NodeTypeTag.DOCUMENT, NodeTypeTag.CANVAS})


@dataclass
class ParseResult:
    registry: NodeRegistry
    warnings: List[PipelineWarning] = field(default_factory=list)


@dataclass
class _Visit:
    """Per-record traversal state. Finalized in post-order."""
    raw: Dict[str, Any]
    path: str
    order: int
    nest_parent: Optional["_Visit"] = None
    node_id: str = ""
    node: Optional[NormalizedNode] = None
    ref_children: List[str] = field(default_factory=list)
    declared_parent: Optional[str] = None


# ---------------------------------------------------------------------------
# Root unwrapping
# ---------------------------------------------------------------------------


def _unwrap_root(raw_tree: Any) -> Tuple[List[Any], Dict[str, str]]:
    """Return (top-level raw records, style id -> style name table).

    Accepts a forest (list), a file response ({"document": ...}), a nodes
    response ({"nodes": {id: {"document": ...}}}) or a single node dict.
    """
    if isinstance(raw_tree, list):
        return list(raw_tree), {}

    if not isinstance(raw_tree, dict):
        raise MalformedInputError(
            f"Raw tree root must be an object or a list, got {type(raw_tree).__name__}",
            received_type=type(raw_tree).__name__,
        )

    if isinstance(raw_tree.get("document"), dict):
        return [raw_tree["document"]], _style_table(raw_tree.get("styles"))

    nodes_map = raw_tree.get("nodes")
    if (
        isinstance(nodes_map, dict)
        and nodes_map
        and all(isinstance(v, dict) and isinstance(v.get("document"), dict) for v in nodes_map.values())
        and "type" not in raw_tree
    ):
        styles: Dict[str, str] = {}
        documents = []
        for entry in nodes_map.values():
            documents.append(entry["document"])
            styles.update(_style_table(entry.get("styles")))
        return documents, styles

    return [raw_tree], {}


def _style_table(raw_styles: Any) -> Dict[str, str]:
    table: Dict[str, str] = {}
    if not isinstance(raw_styles, dict):
        return table
    for style_id, info in raw_styles.items():
        if isinstance(info, dict) and isinstance(info.get("name"), str):
            table[str(style_id)] = info["name"]
    return table


# ---------------------------------------------------------------------------
# Record readers
# ---------------------------------------------------------------------------


def _read_component_ref(raw: Dict[str, Any], tag: NodeTypeTag) -> Optional[ComponentRef]:
    if tag != NodeTypeTag.INSTANCE:
        return None

    master_id: Optional[str] = None
    main_component = raw.get("mainComponent")
    raw_props = raw.get("componentProperties")
    for candidate in (
        raw.get("componentId"),
        main_component.get("id") if isinstance(main_component, dict) else None,
        raw.get("masterComponentId"),
        raw_props.get("masterComponentId") if isinstance(raw_props, dict) else None,
    ):
        if isinstance(candidate, str) and candidate:
            master_id = candidate
            break

    variant_pairs: List[Tuple[str, str]] = []
    raw_variants = raw.get("variantProperties")
    if isinstance(raw_variants, dict):
        for key, value in raw_variants.items():
            if value is not None:
                variant_pairs.append((str(key), str(value)))

    prop_triples: List[Tuple[str, str, str]] = []
    if isinstance(raw_props, dict):
        for prop_name, prop in raw_props.items():
            if isinstance(prop, dict) and "value" in prop:
                prop_triples.append((
                    str(prop_name),
                    str(prop.get("type", "")).upper(),
                    str(prop.get("value")),
                ))

    overrides: List[Tuple[str, Tuple[str, ...]]] = []
    raw_overrides = raw.get("overrides")
    if isinstance(raw_overrides, list):
        for entry in raw_overrides:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                continue
            fields = entry.get("overriddenFields")
            if not isinstance(fields, list):
                fields = []
            overrides.append((entry["id"], tuple(sorted(str(f) for f in fields))))

    component_set_id = raw.get("componentSetId")
    return ComponentRef(
        master_id=master_id,
        component_set_id=component_set_id if isinstance(component_set_id, str) else None,
        variant_properties=tuple(variant_pairs),
        component_properties=tuple(prop_triples),
        overrides=tuple(overrides),
    )


def _read_interactions(raw: Dict[str, Any]) -> Tuple[Interaction, ...]:
    reactions = raw.get("reactions")
    if not isinstance(reactions, list):
        return ()
    interactions: List[Interaction] = []
    for reaction in reactions:
        if not isinstance(reaction, dict):
            continue
        trigger = reaction.get("trigger")
        trigger_type = trigger.get("type") if isinstance(trigger, dict) else trigger
        trigger_name = str(trigger_type or "unknown").lower()

        actions = reaction.get("actions")
        if not isinstance(actions, list):
            actions = [reaction.get("action")]
        for action in actions:
            if not isinstance(action, dict):
                continue
            destination = action.get("destinationId")
            transition = action.get("transition")
            transition_type = transition.get("type") if isinstance(transition, dict) else None
            navigation = action.get("navigation")
            interactions.append(Interaction(
                trigger=trigger_name,
                destination_id=destination if isinstance(destination, str) else None,
                navigation=str(navigation).lower() if navigation else None,
                transition=str(transition_type).lower() if transition_type else None,
            ))
    return tuple(interactions)


def _read_style(raw: Dict[str, Any], tag: NodeTypeTag) -> NodeStyle:
    corner_radius, corner_radii = read_corner_radius(raw)
    layout_mode = raw.get("layoutMode")
    if layout_mode not in ("HORIZONTAL", "VERTICAL"):
        layout_mode = None
    return NodeStyle(
        fills=read_paints(raw.get("fills")),
        strokes=read_paints(raw.get("strokes")),
        stroke_weight=max(as_number(raw.get("strokeWeight")), 0.0),
        corner_radius=corner_radius,
        corner_radii=corner_radii,
        effects=read_effects(raw.get("effects")),
        typography=read_typography(raw) if tag == NodeTypeTag.TEXT else None,
        layout_mode=layout_mode,
        layout_wrap=raw.get("layoutWrap") == "WRAP",
        item_spacing=as_number(raw.get("itemSpacing")),
        padding=(
            as_number(raw.get("paddingTop")),
            as_number(raw.get("paddingRight")),
            as_number(raw.get("paddingBottom")),
            as_number(raw.get("paddingLeft")),
        ),
        opacity=min(max(as_number(raw.get("opacity"), 1.0), 0.0), 1.0),
    )


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class NodeParser:
    """Normalizes a raw node tree into a NodeRegistry."""

    def parse(self, raw_tree: Any) -> ParseResult:
        top_level, style_names = _unwrap_root(raw_tree)
        warnings: List[PipelineWarning] = []

        visits = self._traverse(top_level, warnings)
        nodes = self._link(visits, warnings)
        registry = NodeRegistry(nodes, style_names=style_names)

        logger.info(
            "NodeParser: %d raw records -> %d nodes, %d warnings",
            len(visits), len(registry), len(warnings),
        )
        return ParseResult(registry=registry, warnings=warnings)

    # -- single depth-first traversal --

    def _traverse(self, top_level: List[Any], warnings: List[PipelineWarning]) -> List[_Visit]:
        """One iterative DFS over the raw tree; nodes finalized bottom-up."""
        visits: List[_Visit] = []
        by_id: Dict[str, _Visit] = {}

        # (raw, path, nest_parent, expanded)
        stack: List[Tuple[Any, str, Optional[_Visit], Optional[_Visit]]] = []
        for index in reversed(range(len(top_level))):
            stack.append((top_level[index], f"[{index}]", None, None))

        while stack:
            raw, path, nest_parent, visit = stack.pop()

            if visit is not None:
                # Post-order: all children of this record have been visited.
                visit.node = self._normalize(visit, warnings)
                continue

            if not isinstance(raw, dict):
                warnings.append(_warning(
                    "invalid_record",
                    f"Skipped non-object node record at {path} ({type(raw).__name__})",
                    impact=WarningImpact.LOW,
                ))
                continue

            visit = _Visit(raw=raw, path=path, order=len(visits), nest_parent=nest_parent)
            raw_id = raw.get("id")
            if isinstance(raw_id, (str, int)) and not isinstance(raw_id, bool) and str(raw_id):
                visit.node_id = str(raw_id)
            else:
                visit.node_id = f"__anon_{visit.order}"
                warnings.append(_warning(
                    "missing_id",
                    f"Node at {path} has no id; assigned {visit.node_id}",
                    [visit.node_id],
                ))

            previous = by_id.get(visit.node_id)
            if previous is not None:
                warnings.append(_warning(
                    "duplicate_id",
                    f"Duplicate node id {visit.node_id!r} at {previous.path} and {path}; "
                    f"keeping the later occurrence",
                    [visit.node_id],
                    impact=WarningImpact.HIGH,
                ))
            by_id[visit.node_id] = visit
            visits.append(visit)

            declared = raw.get("parentId")
            if isinstance(declared, (str, int)) and not isinstance(declared, bool):
                visit.declared_parent = str(declared)

            stack.append((raw, path, nest_parent, visit))
            children = raw.get("children")
            if children is None:
                continue
            if not isinstance(children, list):
                warnings.append(_warning(
                    "invalid_children",
                    f"Node {visit.node_id!r} has non-list children; ignored",
                    [visit.node_id],
                    impact=WarningImpact.LOW,
                ))
                continue
            for index in reversed(range(len(children))):
                child = children[index]
                if isinstance(child, (str, int)) and not isinstance(child, bool):
                    visit.ref_children.insert(0, str(child))
                    continue
                stack.append((child, f"{path}.children[{index}]", visit, None))

        return visits

    def _normalize(self, visit: _Visit, warnings: List[PipelineWarning]) -> NormalizedNode:
        raw = visit.raw
        raw_type = raw.get("type")
        tag = NodeTypeTag.from_raw(raw_type)
        if tag is None:
            tag = NodeTypeTag.UNKNOWN
            warnings.append(_warning(
                "unknown_type",
                f"Node {visit.node_id!r} has unrecognized type {raw_type!r}; tagged UNKNOWN",
                [visit.node_id],
                impact=WarningImpact.LOW,
            ))

        bounds, coerced = extract_bounds(raw)
        bounds_defaulted = bounds is None or bool(coerced)
        if bounds is None:
            bounds = ZERO_BOUNDS
            if tag not in _BOUNDLESS_TYPES:
                warnings.append(_warning(
                    "missing_bounds",
                    f"Node {visit.node_id!r} has no bounding box; defaulted to (0,0,0,0)",
                    [visit.node_id],
                    impact=WarningImpact.LOW,
                ))
        elif coerced:
            warnings.append(_warning(
                "missing_bounds",
                f"Node {visit.node_id!r} has non-numeric bounds field(s) "
                f"{', '.join(coerced)}; coerced to 0",
                [visit.node_id],
                impact=WarningImpact.LOW,
            ))

        name = raw.get("name")
        style_refs = raw.get("styles")
        characters = raw.get("characters")
        return NormalizedNode(
            id=visit.node_id,
            type=tag,
            name=name if isinstance(name, str) else "",
            visible=raw.get("visible", True) is not False,
            locked=raw.get("locked", False) is True,
            bounds=bounds,
            bounds_defaulted=bounds_defaulted,
            transform=extract_transform(raw),
            style_refs=tuple(sorted(
                (str(k), str(v)) for k, v in style_refs.items() if isinstance(v, (str, int))
            )) if isinstance(style_refs, dict) else (),
            component_ref=_read_component_ref(raw, tag),
            style=_read_style(raw, tag),
            characters=characters if tag == NodeTypeTag.TEXT and isinstance(characters, str) else None,
            interactions=_read_interactions(raw),
            raw_type=str(raw_type) if raw_type is not None else "",
        )

    # -- reference resolution + reconciliation --

    def _link(self, visits: List[_Visit], warnings: List[PipelineWarning]) -> List[NormalizedNode]:
        """Resolve parent/child references by ID and return nodes in pre-order."""
        winners: Dict[str, _Visit] = {}
        for visit in visits:
            winners[visit.node_id] = visit

        live = sorted(winners.values(), key=lambda v: v.order)
        parent_of: Dict[str, Optional[str]] = {}

        # 1. Nesting is authoritative.
        for visit in live:
            if visit.nest_parent is not None:
                parent_of[visit.node_id] = visit.nest_parent.node_id
                if visit.declared_parent and visit.declared_parent != visit.nest_parent.node_id:
                    warnings.append(_warning(
                        "parent_mismatch",
                        f"Node {visit.node_id!r} declares parentId {visit.declared_parent!r} "
                        f"but is nested under {visit.nest_parent.node_id!r}; nesting wins",
                        [visit.node_id],
                        impact=WarningImpact.LOW,
                    ))

        # 2. Children given as id strings (inverted pointer direction).
        for visit in live:
            for child_id in visit.ref_children:
                if child_id not in winners:
                    warnings.append(_warning(
                        "dangling_child",
                        f"Node {visit.node_id!r} lists child {child_id!r} which does not exist; dropped",
                        [visit.node_id],
                    ))
                    continue
                if child_id in parent_of:
                    if parent_of[child_id] != visit.node_id:
                        warnings.append(_warning(
                            "conflicting_parent",
                            f"Node {child_id!r} is claimed by {visit.node_id!r} but already "
                            f"belongs to {parent_of[child_id]!r}",
                            [child_id],
                            impact=WarningImpact.LOW,
                        ))
                    continue
                parent_of[child_id] = visit.node_id

        # 3. Declared parentId for records that are neither nested nor claimed.
        needs_synthetic = False
        for visit in live:
            if visit.node_id in parent_of:
                continue
            declared = visit.declared_parent
            if declared is None:
                parent_of[visit.node_id] = None
            elif declared in winners and declared != visit.node_id:
                parent_of[visit.node_id] = declared
            else:
                parent_of[visit.node_id] = SYNTHETIC_ROOT_ID
                needs_synthetic = True
                warnings.append(_warning(
                    "orphan_reparented",
                    f"Node {visit.node_id!r} declares missing parent {declared!r}; "
                    f"re-parented to synthetic root",
                    [visit.node_id],
                ))

        # 4. Children of records that lost a duplicate-id contest point at the
        # winner, which never listed them. Child lists are rebuilt from
        # parent_of, so they are re-attached to the winner in document order.
        children_of: Dict[Optional[str], List[str]] = {}
        for visit in live:
            children_of.setdefault(parent_of[visit.node_id], []).append(visit.node_id)

        # 5. Parent links that loop never reach a root; break each loop.
        reached = self._reachable(children_of)
        for visit in live:
            if visit.node_id in reached:
                continue
            old_parent = parent_of[visit.node_id]
            children_of[old_parent].remove(visit.node_id)
            parent_of[visit.node_id] = SYNTHETIC_ROOT_ID
            children_of.setdefault(SYNTHETIC_ROOT_ID, []).append(visit.node_id)
            needs_synthetic = True
            warnings.append(_warning(
                "parent_cycle",
                f"Parent chain of {visit.node_id!r} loops; re-parented to synthetic root",
                [visit.node_id],
                impact=WarningImpact.HIGH,
            ))
            reached = self._reachable(children_of)

        if needs_synthetic:
            children_of.setdefault(None, []).append(SYNTHETIC_ROOT_ID)

        # 6. Emit in pre-order with final parent/child ids.
        base: Dict[str, NormalizedNode] = {v.node_id: v.node for v in live if v.node is not None}
        if needs_synthetic:
            base[SYNTHETIC_ROOT_ID] = NormalizedNode(
                id=SYNTHETIC_ROOT_ID,
                type=NodeTypeTag.DOCUMENT,
                name=SYNTHETIC_ROOT_NAME,
                bounds_defaulted=True,
                raw_type=NodeTypeTag.DOCUMENT.value,
            )
            parent_of[SYNTHETIC_ROOT_ID] = None

        ordered: List[NormalizedNode] = []
        stack = list(reversed(children_of.get(None, [])))
        while stack:
            node_id = stack.pop()
            kids = children_of.get(node_id, [])
            ordered.append(replace(
                base[node_id],
                parent_id=parent_of[node_id],
                child_ids=tuple(kids),
            ))
            stack.extend(reversed(kids))
        return ordered

    @staticmethod
    def _reachable(children_of: Dict[Optional[str], List[str]]) -> set:
        reached = set()
        stack = list(children_of.get(None, [])) + list(children_of.get(SYNTHETIC_ROOT_ID, []))
        while stack:
            node_id = stack.pop()
            if node_id in reached:
                continue
            reached.add(node_id)
            stack.extend(children_of.get(node_id, []))
        return reached


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


def parse(raw_tree: Any) -> ParseResult:
    """Module-level convenience for NodeParser().parse()."""
    return NodeParser().parse(raw_tree)
