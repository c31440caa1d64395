"""Per-node intent inference from weighted signals.

Consumes the registry plus the token, component and layout facts and
assigns every node one primary intent with a [0, 1] confidence. Signals:

    name vocabulary        0.5   whole-word match on the layer name
    structural control     0.35  bordered container holding a leaf TEXT
    component family       0.3   master / component set name match
      + interactive states 0.1   hover / pressed / disabled / focus variants
    layout                 0.2   horizontal stack -> navigation,
                                 repeated instances -> list
    token accent           0.15  saturated fill upgrades button -> call-to-action
    type baseline          0.2   TEXT / vector / image fill

Per-intent sums are capped at 1.0. Ties resolve by vocabulary order.
A node no signal fires on gets ``unknown`` with confidence 0.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..cancellation import CancellationToken, checkpoint
from ..extractors.components import parse_variant_descriptor
from ..models import (
    ComponentRelationship,
    DesignToken,
    LayoutKind,
    LayoutPattern,
    SemanticAnnotation,
    TokenCategory,
)
from ..nodes.figma_utils import hex_saturation, is_auto_name, rgba_to_hex8, split_name_words
from ..nodes.registry import VECTOR_TYPES, NodeRegistry, NodeTypeTag, NormalizedNode
from . import vocabulary as vocab

logger = logging.getLogger(__name__)


class _Scores:
    """Per-node intent accumulator."""

    def __init__(self) -> None:
        self.scores: Dict[str, float] = {}
        self.reasons: Dict[str, List[str]] = {}

    def add(self, intent: str, weight: float, reason: str) -> None:
        self.scores[intent] = min(self.scores.get(intent, 0.0) + weight, 1.0)
        self.reasons.setdefault(intent, []).append(reason)

    def promote(self, source: str, target: str, weight: float, reason: str) -> None:
        """Carry source's score and reasons over to target, plus weight."""
        base = max(self.scores.get(target, 0.0), self.scores[source])
        reasons = self.reasons.setdefault(target, [])
        for inherited in self.reasons[source]:
            if inherited not in reasons:
                reasons.append(inherited)
        reasons.append(reason)
        self.scores[target] = min(base + weight, 1.0)

    def has(self, intent: str) -> bool:
        return intent in self.scores

    def winner(self) -> Optional[str]:
        if not self.scores:
            return None
        rank = {intent: i for i, intent in enumerate(vocab.INTENT_ORDER)}
        return min(self.scores, key=lambda i: (-self.scores[i], rank.get(i, len(rank))))


class SemanticAnalyzer:
    def analyze(
        self,
        registry: NodeRegistry,
        tokens: Sequence[DesignToken] = (),
        components: Sequence[ComponentRelationship] = (),
        layouts: Sequence[LayoutPattern] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[SemanticAnnotation]:
        relationships = {rel.instance_id: rel for rel in components}
        layouts_by_container = {layout.container_id: layout for layout in layouts}
        color_keys = {t.key for t in tokens if t.category == TokenCategory.COLOR}

        annotations: List[SemanticAnnotation] = []
        for node in registry:
            checkpoint(cancel_token)
            scores = _Scores()
            self._name_signal(node, scores)
            self._structure_signal(node, registry, scores)
            self._component_signal(node, registry, relationships.get(node.id), scores)
            self._layout_signal(layouts_by_container.get(node.id), registry, relationships, scores)
            self._type_signal(node, scores)
            self._accent_signal(node, color_keys, scores)

            winner = scores.winner()
            if winner is None:
                annotations.append(SemanticAnnotation(
                    node_id=node.id, primary_intent=vocab.UNKNOWN_INTENT, confidence=0.0,
                ))
                continue
            annotations.append(SemanticAnnotation(
                node_id=node.id,
                primary_intent=winner,
                confidence=round(scores.scores[winner], 4),
                reasons=tuple(scores.reasons[winner]),
            ))

        logger.info(
            "SemanticAnalyzer: %d annotations, %d unknown",
            len(annotations),
            sum(1 for a in annotations if a.primary_intent == vocab.UNKNOWN_INTENT),
        )
        return annotations

    # -- signals --

    @staticmethod
    def _name_signal(node: NormalizedNode, scores: _Scores) -> None:
        if not node.name or is_auto_name(node.name):
            return
        for intent in vocab.match_intents(split_name_words(node.name)):
            scores.add(intent, vocab.WEIGHT_NAME, f"name_match:{intent}")

    @staticmethod
    def _structure_signal(node: NormalizedNode, registry: NodeRegistry, scores: _Scores) -> None:
        if node.is_leaf or not node.style.has_border:
            return
        has_text_leaf = any(
            child.type == NodeTypeTag.TEXT and child.is_leaf and child.visible
            for child in registry.children(node.id)
        )
        if not has_text_leaf:
            return
        if node.style.has_solid_fill:
            scores.add("button", vocab.WEIGHT_STRUCTURE, "structure:filled_bordered_text_container")
        else:
            scores.add("input", vocab.WEIGHT_STRUCTURE, "structure:bordered_text_container")

    @staticmethod
    def _component_signal(
        node: NormalizedNode,
        registry: NodeRegistry,
        relationship: Optional[ComponentRelationship],
        scores: _Scores,
    ) -> None:
        if relationship is None:
            return
        master = registry.get(relationship.master_id)
        component_set = registry.get(relationship.component_set_id)
        family_names = [n.name for n in (component_set, master) if n is not None and n.name]

        matched: List[str] = []
        for name in family_names:
            for intent in vocab.match_intents(split_name_words(name)):
                if intent not in matched:
                    matched.append(intent)
        for intent in matched:
            scores.add(intent, vocab.WEIGHT_COMPONENT, f"component_family:{family_names[0]}")

        if not any(intent in vocab.INTERACTIVE_INTENTS for intent in matched):
            return
        states = _variant_values(relationship, registry)
        if states & vocab.INTERACTIVE_STATES:
            for intent in matched:
                if intent in vocab.INTERACTIVE_INTENTS:
                    scores.add(intent, vocab.WEIGHT_INTERACTIVE_STATE, "interactive_variants")

    @staticmethod
    def _layout_signal(
        layout: Optional[LayoutPattern],
        registry: NodeRegistry,
        relationships: Dict[str, ComponentRelationship],
        scores: _Scores,
    ) -> None:
        if layout is None or len(layout.participant_node_ids) < vocab.LAYOUT_MIN_PARTICIPANTS:
            return
        if layout.kind == LayoutKind.STACK and layout.axis == "horizontal":
            scores.add("navigation", vocab.WEIGHT_LAYOUT, "layout:horizontal_stack")
            return
        if layout.kind == LayoutKind.GRID or (
            layout.kind == LayoutKind.STACK and layout.axis == "vertical"
        ):
            masters = {
                relationships[pid].master_id if pid in relationships else None
                for pid in layout.participant_node_ids
            }
            if len(masters) == 1 and None not in masters:
                scores.add("list", vocab.WEIGHT_LAYOUT, f"layout:repeated_instances_{layout.kind.value.lower()}")

    @staticmethod
    def _type_signal(node: NormalizedNode, scores: _Scores) -> None:
        if node.type == NodeTypeTag.TEXT:
            scores.add(vocab.TEXT_INTENT, vocab.WEIGHT_TYPE_BASELINE, "type:text")
        elif node.type in VECTOR_TYPES:
            scores.add("icon", vocab.WEIGHT_TYPE_BASELINE, "type:vector")
        if any(p.type == "IMAGE" for p in node.style.visible_fills):
            scores.add("image", vocab.WEIGHT_TYPE_BASELINE, "type:image_fill")

    @staticmethod
    def _accent_signal(node: NormalizedNode, color_keys: Iterable[str], scores: _Scores) -> None:
        """A saturated fill turns a button candidate into a call-to-action.

        The call-to-action inherits the button's evidence plus the accent
        weight, so it outranks the plain button reading.
        """
        if not scores.has("button"):
            return
        for paint in node.style.visible_fills:
            if paint.type != "SOLID" or paint.color is None:
                continue
            hex_key = rgba_to_hex8(paint.color, paint.opacity)
            if hex_key not in color_keys or hex_saturation(hex_key) < vocab.ACCENT_SATURATION:
                continue
            scores.promote("button", "call-to-action", vocab.WEIGHT_TOKEN_ACCENT, f"token_accent:{hex_key}")
            return


def _variant_values(relationship: ComponentRelationship, registry: NodeRegistry) -> set:
    values = {v.lower() for v in relationship.variant_properties.values()}
    if relationship.component_set_id is not None:
        for sibling in registry.children(relationship.component_set_id):
            if sibling.type == NodeTypeTag.COMPONENT:
                values.update(v.lower() for v in parse_variant_descriptor(sibling.name).values())
    return values
