"""Component instance <-> master relationship mapping.

Builds relationship edges purely from ID lookups in the NodeRegistry, so a
cyclic master graph (master A nests an instance of B, B of C, C of A) is
walked with a visited set and reported once as a CycleDetectedWarning
instead of recursing forever.

Variant properties are read, in priority order, from:
1. the instance's raw ``variantProperties`` mapping
2. ``componentProperties`` entries of type VARIANT
3. the master's own name when it lives in a COMPONENT_SET
   ("Size=Large, State=Hover"); a name that doesn't follow the
   ``key=value`` convention lands in a single ``variant`` bucket

Design-system usage counts resolved instances per COMPONENT master,
reporting coverage (used / all masters), unused masters and hotspots.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .. import settings
from ..cancellation import CancellationToken, checkpoint
from ..errors import WarningImpact, WarningKind
from ..models import (
    ComponentRelationship,
    ComponentUsage,
    DesignSystemUsage,
    Override,
    PipelineWarning,
    VariantGroup,
)
from ..nodes.registry import NodeRegistry, NodeTypeTag, NormalizedNode

logger = logging.getLogger(__name__)

_STAGE = "components"

_PAIR_SEPARATOR_RE = re.compile(r"\s*[,;]\s*")

# Most-used masters reported in DesignSystemUsage.hotspots
HOTSPOT_LIMIT = 10


@dataclass
class ComponentMapResult:
    relationships: List[ComponentRelationship] = field(default_factory=list)
    variant_groups: List[VariantGroup] = field(default_factory=list)
    warnings: List[PipelineWarning] = field(default_factory=list)
    # master id -> master ids it nests (directly), sorted
    composition: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    usage: DesignSystemUsage = field(default_factory=DesignSystemUsage)


def parse_variant_descriptor(descriptor: str) -> Dict[str, str]:
    """Parse "Size=Large, State=Hover" into {"Size": "Large", "State": "Hover"}.

    Falls back to {"variant": descriptor} when any segment lacks '='.
    """
    text = descriptor.strip()
    if not text:
        return {}
    pairs: Dict[str, str] = {}
    for segment in _PAIR_SEPARATOR_RE.split(text):
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key.strip():
            return {"variant": text}
        pairs[key.strip()] = value.strip()
    return pairs or {"variant": text}


class ComponentMapper:
    """Maps INSTANCE nodes to their masters and groups variants."""

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth if max_depth is not None else settings.MAX_COMPONENT_DEPTH

    def map(
        self,
        registry: NodeRegistry,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ComponentMapResult:
        result = ComponentMapResult()

        for node in registry.nodes_of_type(NodeTypeTag.INSTANCE):
            checkpoint(cancel_token)
            relationship = self._relationship(node, registry, result.warnings)
            if relationship is not None:
                result.relationships.append(relationship)

        result.variant_groups = self._variant_groups(registry)
        result.usage = self._usage(registry, result.relationships)
        result.composition = self._composition(registry, cancel_token)
        result.warnings.extend(self._detect_cycles(result.composition, cancel_token))

        logger.info(
            "ComponentMapper: %d relationships, %d variant groups, %d/%d masters used, %d warnings",
            len(result.relationships), len(result.variant_groups),
            result.usage.used_master_count, result.usage.master_count, len(result.warnings),
        )
        return result

    # -- relationships --

    def _relationship(
        self,
        node: NormalizedNode,
        registry: NodeRegistry,
        warnings: List[PipelineWarning],
    ) -> Optional[ComponentRelationship]:
        ref = node.component_ref
        master_id = ref.master_id if ref is not None else None
        if master_id is None:
            warnings.append(_warning(
                "missing_master_ref",
                f"Instance {node.id!r} carries no master component reference",
                [node.id],
                impact=WarningImpact.LOW,
            ))
            return None

        master = registry.get(master_id)
        if master is None:
            warnings.append(_warning(
                "dangling_master",
                f"Instance {node.id!r} references master {master_id!r} which is not in the tree",
                [node.id],
            ))
            return None

        component_set_id = self._component_set_of(master, registry)
        if component_set_id is None and ref.component_set_id in registry:
            component_set_id = ref.component_set_id

        overrides: List[Override] = []
        for override_id, fields in ref.overrides:
            if override_id not in registry:
                warnings.append(_warning(
                    "dangling_override",
                    f"Instance {node.id!r} overrides unknown node {override_id!r}; dropped",
                    [node.id],
                    impact=WarningImpact.LOW,
                ))
                continue
            overrides.append(Override(node_id=override_id, overridden_fields=fields))

        return ComponentRelationship(
            instance_id=node.id,
            master_id=master.id,
            component_set_id=component_set_id,
            variant_properties=self._variant_properties(node, master, component_set_id),
            overrides=tuple(sorted(overrides, key=lambda o: o.node_id)),
        )

    @staticmethod
    def _component_set_of(master: NormalizedNode, registry: NodeRegistry) -> Optional[str]:
        parent = registry.get(master.parent_id)
        if parent is not None and parent.type == NodeTypeTag.COMPONENT_SET:
            return parent.id
        return None

    @staticmethod
    def _variant_properties(
        instance: NormalizedNode,
        master: NormalizedNode,
        component_set_id: Optional[str],
    ) -> Dict[str, str]:
        ref = instance.component_ref
        if ref is not None and ref.variant_properties:
            return dict(sorted(ref.variant_properties))

        if ref is not None:
            variants = {name: value for name, kind, value in ref.component_properties if kind == "VARIANT"}
            if variants:
                return dict(sorted(variants.items()))

        if component_set_id is not None:
            return dict(sorted(parse_variant_descriptor(master.name).items()))
        return {}

    # -- variant groups --

    def _variant_groups(self, registry: NodeRegistry) -> List[VariantGroup]:
        groups: List[VariantGroup] = []
        for component_set in registry.nodes_of_type(NodeTypeTag.COMPONENT_SET):
            master_ids: List[str] = []
            values: Dict[str, List[str]] = {}
            for child in registry.children(component_set.id):
                if child.type != NodeTypeTag.COMPONENT:
                    continue
                master_ids.append(child.id)
                for key, value in parse_variant_descriptor(child.name).items():
                    bucket = values.setdefault(key, [])
                    if value not in bucket:
                        bucket.append(value)
            groups.append(VariantGroup(
                component_set_id=component_set.id,
                name=component_set.name,
                master_ids=tuple(master_ids),
                properties={k: tuple(v) for k, v in sorted(values.items())},
            ))
        return groups

    # -- design-system usage --

    def _usage(
        self,
        registry: NodeRegistry,
        relationships: List[ComponentRelationship],
    ) -> DesignSystemUsage:
        """Instances per master, unused masters and the most-used masters.

        Only resolved relationships count; an instance whose master is
        missing never inflates coverage.
        """
        instances: Dict[str, List[str]] = {}
        for rel in relationships:
            instances.setdefault(rel.master_id, []).append(rel.instance_id)

        usages: List[ComponentUsage] = []
        for master in registry.nodes_of_type(NodeTypeTag.COMPONENT):
            ids = instances.get(master.id, [])
            usages.append(ComponentUsage(
                master_id=master.id,
                name=master.name,
                component_set_id=self._component_set_of(master, registry),
                instance_count=len(ids),
                instance_ids=tuple(ids),
            ))

        used = [u for u in usages if u.instance_count > 0]
        hotspots = sorted(used, key=lambda u: (-u.instance_count, u.master_id))[:HOTSPOT_LIMIT]
        return DesignSystemUsage(
            master_count=len(usages),
            used_master_count=len(used),
            coverage=round(len(used) / len(usages), 4) if usages else 0.0,
            usages=tuple(usages),
            unused_master_ids=tuple(u.master_id for u in usages if u.instance_count == 0),
            hotspots=tuple(u.master_id for u in hotspots),
        )

    # -- composition graph --

    def _composition(
        self,
        registry: NodeRegistry,
        cancel_token: Optional[CancellationToken],
    ) -> Dict[str, Tuple[str, ...]]:
        """Master id -> masters referenced by instances inside its subtree.

        Nested instances are not descended into; their own masters carry
        their composition, which keeps each subtree walk linear.
        """
        composition: Dict[str, Tuple[str, ...]] = {}
        for master in registry.nodes_of_type(NodeTypeTag.COMPONENT):
            checkpoint(cancel_token)
            nested: Set[str] = set()
            stack = list(master.child_ids)
            seen: Set[str] = set()
            while stack:
                node_id = stack.pop()
                if node_id in seen:
                    continue
                seen.add(node_id)
                node = registry.get(node_id)
                if node is None:
                    continue
                if node.type == NodeTypeTag.INSTANCE:
                    target = node.component_ref.master_id if node.component_ref else None
                    if target is not None and target in registry:
                        nested.add(target)
                    continue
                stack.extend(node.child_ids)
            composition[master.id] = tuple(sorted(nested))
        return composition

    def _detect_cycles(
        self,
        composition: Dict[str, Tuple[str, ...]],
        cancel_token: Optional[CancellationToken],
    ) -> List[PipelineWarning]:
        """Iterative DFS over the master graph; one warning per distinct cycle."""
        warnings: List[PipelineWarning] = []
        reported: Set[Tuple[str, ...]] = set()
        done: Set[str] = set()

        for start in sorted(composition):
            if start in done:
                continue
            # Each frame: (master id, iterator position)
            path: List[str] = [start]
            on_path: Set[str] = {start}
            positions: List[int] = [0]
            while path:
                checkpoint(cancel_token)
                current = path[-1]
                targets = composition.get(current, ())
                index = positions[-1]
                if index >= len(targets) or len(path) > self.max_depth:
                    done.add(current)
                    on_path.discard(current)
                    path.pop()
                    positions.pop()
                    continue
                positions[-1] = index + 1
                target = targets[index]
                if target in on_path:
                    cycle = path[path.index(target):]
                    signature = tuple(sorted(cycle))
                    if signature not in reported:
                        reported.add(signature)
                        warnings.append(PipelineWarning(
                            kind=WarningKind.CYCLE_DETECTED,
                            code="component_cycle",
                            message=(
                                "Master composition cycle: "
                                + " -> ".join(cycle + [target])
                                + "; traversal bounded"
                            ),
                            stage=_STAGE,
                            node_ids=tuple(cycle),
                            impact=WarningImpact.MEDIUM,
                        ))
                    continue
                if target in done or target not in composition:
                    continue
                path.append(target)
                on_path.add(target)
                positions.append(0)

        return warnings


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
