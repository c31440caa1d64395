"""Tests for extractors/prototype.py."""

from __future__ import annotations

from design_context.errors import WarningKind
from design_context.extractors.prototype import PrototypeMapper
from design_context.nodes import parse


def _frame(node_id, **extra):
    node = {
        "id": node_id,
        "type": "FRAME",
        "name": node_id,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
    }
    node.update(extra)
    return node


def _click_to(destination, navigation="NAVIGATE"):
    return [{
        "trigger": {"type": "ON_CLICK"},
        "actions": [{"type": "NODE", "destinationId": destination, "navigation": navigation}],
    }]


class TestNodeReactions:
    def test_screen_file_edge(self, screen_file):
        result = PrototypeMapper().map(parse(screen_file).registry)

        assert len(result.edges) == 1
        edge = result.edges[0]
        assert (edge.source_node_id, edge.target_node_id, edge.trigger) == ("1:4", "2:1", "on_click")
        assert edge.navigation == "navigate"
        assert edge.transition == "dissolve"
        assert result.notes == []
        assert result.warnings == []

    def test_duplicate_reactions_collapse(self):
        tree = [_frame("a", reactions=_click_to("b") + _click_to("b", navigation="OVERLAY")), _frame("b")]
        edges = PrototypeMapper().map(parse(tree).registry).edges

        assert len(edges) == 1
        assert edges[0].navigation == "navigate"

    def test_unknown_destination_dropped_with_warning(self):
        result = PrototypeMapper().map(parse([_frame("a", reactions=_click_to("ghost"))]).registry)

        assert result.edges == []
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.kind == WarningKind.STRUCTURAL
        assert warning.code == "dangling_flow_target"
        assert warning.node_ids == ("a",)

    def test_reaction_without_destination_ignored(self):
        tree = [_frame("a", reactions=[{"trigger": {"type": "ON_HOVER"}, "action": {"type": "BACK"}}])]
        result = PrototypeMapper().map(parse(tree).registry)
        assert result.edges == []
        assert result.warnings == []


class TestRawInteractions:
    def test_list_and_dict_payloads(self):
        registry = parse([_frame("a"), _frame("b"), _frame("c")]).registry
        entries = [
            {"sourceNodeId": "b", "targetNodeId": "c", "trigger": "ON_DRAG"},
            {"source": "a", "destinationId": "b", "trigger": {"type": "ON_CLICK"}},
        ]

        from_list = PrototypeMapper().map(registry, entries).edges
        from_dict = PrototypeMapper().map(registry, {"flows": entries}).edges

        assert from_list == from_dict
        assert [(e.source_node_id, e.target_node_id, e.trigger) for e in from_list] == [
            ("a", "b", "on_click"),
            ("b", "c", "on_drag"),
        ]

    def test_incomplete_entry_warns(self):
        registry = parse([_frame("a")]).registry
        result = PrototypeMapper().map(registry, [{"source": "a"}])

        assert result.edges == []
        assert [w.code for w in result.warnings] == ["incomplete_flow_entry"]
        assert result.warnings[0].node_ids == ("a",)

    def test_unusable_payload_is_ignored(self):
        registry = parse([_frame("a")]).registry
        result = PrototypeMapper().map(registry, {"something": "else"})
        assert result.edges == []
        assert result.warnings == []


class TestAbsentMetadata:
    def test_no_interactions_yields_note_only(self):
        result = PrototypeMapper().map(parse([_frame("a"), _frame("b")]).registry)

        assert result.edges == []
        assert result.warnings == []
        assert len(result.notes) == 1
        assert result.notes[0].stage == "prototype"

    def test_empty_registry(self):
        result = PrototypeMapper().map(parse([]).registry)
        assert result.edges == []
        assert len(result.notes) == 1
