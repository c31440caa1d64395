"""Tests for analysis/semantic.py and analysis/vocabulary.py."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from design_context.analysis import vocabulary as vocab
from design_context.analysis.semantic import SemanticAnalyzer
from design_context.extractors.components import ComponentMapper
from design_context.extractors.layout import LayoutAnalyzer
from design_context.extractors.style import StyleExtractor
from design_context.nodes import parse


def _annotate(raw) -> Dict[str, Any]:
    registry = parse(raw).registry
    annotations = SemanticAnalyzer().analyze(
        registry,
        tokens=StyleExtractor().extract(registry).tokens,
        components=ComponentMapper().map(registry).relationships,
        layouts=LayoutAnalyzer().analyze(registry),
    )
    return {a.node_id: a for a in annotations}


def _make_node(node_id: str, node_type: str = "FRAME", name: str = "", **extra: Any) -> Dict[str, Any]:
    node = {
        "id": node_id,
        "type": node_type,
        "name": name or node_id,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 40, "height": 40},
    }
    node.update(extra)
    return node


def _label(node_id: str) -> Dict[str, Any]:
    return _make_node(node_id, "TEXT", "Label", characters="Go")


class TestVocabulary:
    @pytest.mark.parametrize("words, expected", [
        (["btn", "primary"], ["button"]),
        (["call", "to", "action"], ["call-to-action"]),
        (["nav", "bar"], ["navigation"]),
        (["search", "field"], ["input"]),
        (["card", "header"], ["card", "header"]),
        (["hello", "world"], []),
    ])
    def test_match_intents(self, words, expected):
        assert vocab.match_intents(words) == expected

    def test_text_ranks_after_vocabulary(self):
        assert vocab.INTENT_ORDER[-1] == vocab.TEXT_INTENT
        assert vocab.INTENT_ORDER[:len(vocab.VOCABULARY)] == vocab.VOCABULARY


class TestScreenFile:
    @pytest.fixture
    def annotations(self, screen_file):
        return _annotate(screen_file)

    def test_every_node_annotated_once(self, annotations, screen_file):
        assert len(annotations) == len(parse(screen_file).registry)
        for annotation in annotations.values():
            assert 0.0 <= annotation.confidence <= 1.0

    def test_bordered_text_container_is_input(self, annotations):
        email = annotations["1:2"]
        assert email.primary_intent == "input"
        assert email.confidence == 0.35
        assert email.reasons == ("structure:bordered_text_container",)

    def test_accent_instance_becomes_call_to_action(self, annotations):
        submit = annotations["1:4"]
        assert submit.primary_intent == "call-to-action"
        assert submit.confidence == 0.55
        assert submit.reasons == (
            "component_family:Button",
            "interactive_variants",
            "token_accent:#3366FFFF",
        )

    def test_horizontal_stack_is_navigation(self, annotations):
        assert annotations["1:6"].primary_intent == "navigation"
        assert annotations["1:6"].confidence == 0.2
        assert annotations["1:20"].primary_intent == "tab"

    def test_name_match_and_text_baseline(self, annotations):
        assert annotations["10:0"].primary_intent == "button"
        assert annotations["10:0"].reasons == ("name_match:button",)
        assert annotations["1:3"].primary_intent == "text"
        assert annotations["1:3"].confidence == 0.2

    def test_nodes_without_signals_are_unknown(self, annotations):
        for node_id in ("0:0", "1:1", "2:1"):
            assert annotations[node_id].primary_intent == vocab.UNKNOWN_INTENT
            assert annotations[node_id].confidence == 0.0
            assert annotations[node_id].reasons == ()


class TestSignals:
    def test_auto_generated_names_ignored(self):
        annotations = _annotate([_make_node("f", name="Frame 1321317615")])
        assert annotations["f"].primary_intent == vocab.UNKNOWN_INTENT

    def test_tie_breaks_by_vocabulary_order(self):
        annotations = _annotate([_make_node("f", name="Card Header")])
        assert annotations["f"].primary_intent == "card"
        assert annotations["f"].confidence == 0.5

    def test_name_and_structure_add_up(self):
        tree = [_make_node(
            "b", name="Button btn", strokes=[{"type": "SOLID", "color": {"r": 0, "g": 0, "b": 0, "a": 1}}],
            strokeWeight=1, fills=[{"type": "SOLID", "color": {"r": 0.9, "g": 0.9, "b": 0.9, "a": 1}}],
            children=[_label("b.t")],
        )]
        annotation = _annotate(tree)["b"]
        assert annotation.primary_intent == "button"
        assert annotation.confidence == 0.85
        assert "structure:filled_bordered_text_container" in annotation.reasons

    def test_grey_button_is_not_promoted(self):
        tree = [_make_node(
            "b", name="Button", fills=[{"type": "SOLID", "color": {"r": 0.5, "g": 0.5, "b": 0.5, "a": 1}}],
        )]
        assert _annotate(tree)["b"].primary_intent == "button"

    def test_vector_and_image_baselines(self):
        tree = [
            _make_node("v", "VECTOR", "Shape"),
            _make_node("p", "RECTANGLE", "Hero", fills=[{"type": "IMAGE", "imageRef": "abc"}]),
        ]
        annotations = _annotate(tree)
        assert annotations["v"].primary_intent == "icon"
        assert annotations["p"].primary_intent == "image"

    def test_repeated_instances_in_column_are_list(self):
        rows: List[Dict[str, Any]] = [
            _make_node(f"r{i}", "INSTANCE", f"Row {i}", componentId="m",
                       absoluteBoundingBox={"x": 0, "y": 100 + i * 50, "width": 200, "height": 40})
            for i in range(3)
        ]
        tree = [
            _make_node("m", "COMPONENT", "Entry"),
            _make_node("feed", name="Feed", absoluteBoundingBox={"x": 0, "y": 100, "width": 200, "height": 200},
                       children=rows),
        ]
        annotation = _annotate(tree)["feed"]
        assert annotation.primary_intent == "list"
        assert annotation.reasons == ("layout:repeated_instances_stack",)

    def test_inputs_default_to_no_facts(self):
        registry = parse([_make_node("n", name="Menu")]).registry
        annotations = SemanticAnalyzer().analyze(registry)
        assert annotations[0].primary_intent == "navigation"
