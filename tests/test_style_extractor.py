"""Tests for extractors/style.py: token deduplication and naming."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from design_context.extractors.style import StyleExtractor
from design_context.models import TokenCategory
from design_context.nodes import parse


def _make_rect(node_id: str, fills: Optional[List[Dict[str, Any]]] = None, **extra: Any) -> Dict[str, Any]:
    node = {
        "id": node_id,
        "type": "RECTANGLE",
        "name": extra.pop("name", f"Rect {node_id}"),
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
        "fills": fills or [],
    }
    node.update(extra)
    return node


def _red(alpha: float = 1.0, opacity: float = 1.0) -> Dict[str, Any]:
    return {"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0, "a": alpha}, "opacity": opacity}


def _extract(tree):
    return StyleExtractor().extract(parse(tree).registry)


def _by_category(tokens, category):
    return [t for t in tokens if t.category == category]


class TestColorTokens:
    def test_three_siblings_share_one_token(self):
        tree = {
            "id": "frame",
            "type": "FRAME",
            "name": "Frame",
            "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 100},
            "children": [_make_rect(f"r{i}", [_red()]) for i in range(3)],
        }
        colors = _by_category(_extract(tree).tokens, TokenCategory.COLOR)

        assert len(colors) == 1
        assert colors[0].key == "#FF0000FF"
        assert colors[0].usage_count == 3
        assert colors[0].reference_node_ids == ("r0", "r1", "r2")

    def test_quantization_merges_near_identical_values(self):
        tree = [
            _make_rect("a", [{"type": "SOLID", "color": {"r": 1.0, "g": 0.0, "b": 0.0, "a": 1}}]),
            _make_rect("b", [{"type": "SOLID", "color": {"r": 0.9999, "g": 0.0001, "b": 0.0, "a": 1}}]),
        ]
        colors = _by_category(_extract(tree).tokens, TokenCategory.COLOR)
        assert [c.usage_count for c in colors] == [2]

    def test_paint_opacity_folds_into_alpha(self):
        colors = _by_category(_extract([_make_rect("a", [_red(opacity=0.5)])]).tokens, TokenCategory.COLOR)
        assert colors[0].key == "#FF000080"

    def test_node_counted_once_per_value(self):
        tree = [_make_rect("a", [_red(), _red()], strokes=[_red()], strokeWeight=0)]
        colors = _by_category(_extract(tree).tokens, TokenCategory.COLOR)
        assert colors[0].usage_count == 1
        assert colors[0].reference_node_ids == ("a",)

    def test_transparent_paint_is_a_marker_not_a_token(self):
        result = _extract([_make_rect("clear", [_red(alpha=0.0)]), _make_rect("solid", [_red()])])

        assert result.none_markers == ["clear"]
        colors = _by_category(result.tokens, TokenCategory.COLOR)
        assert [c.reference_node_ids for c in colors] == [("solid",)]

    def test_hidden_and_gradient_paints_ignored(self):
        tree = [_make_rect("a", [
            {"type": "SOLID", "visible": False, "color": {"r": 0, "g": 0, "b": 1, "a": 1}},
            {"type": "GRADIENT_LINEAR", "gradientStops": []},
        ])]
        assert _extract(tree).tokens == []


class TestTokenNaming:
    def test_style_name_preferred(self, screen_file):
        tokens = StyleExtractor().extract(parse(screen_file).registry).tokens
        brand = next(t for t in tokens if t.key == "#3366FFFF")

        assert brand.name == "brand-primary"
        assert brand.usage_count == 3
        assert brand.id == "color:#3366FFFF"

    def test_shallowest_node_names_the_token(self):
        tree = {
            "id": "outer",
            "type": "FRAME",
            "name": "Surface",
            "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 100},
            "fills": [_red()],
            "children": [_make_rect("inner", [_red()], name="Deep Layer")],
        }
        colors = _by_category(_extract(tree).tokens, TokenCategory.COLOR)
        assert colors[0].name == "surface"

    def test_fallback_name_without_any_name(self):
        tree = [_make_rect("a", [_red()], name="")]
        colors = _by_category(_extract(tree).tokens, TokenCategory.COLOR)
        assert colors[0].name == "color-ff0000ff"


class TestOtherCategories:
    def test_typography_spacing_effect_border(self):
        tree = {
            "id": "card",
            "type": "FRAME",
            "name": "Card",
            "absoluteBoundingBox": {"x": 0, "y": 0, "width": 200, "height": 100},
            "layoutMode": "VERTICAL",
            "itemSpacing": 8,
            "paddingTop": 16,
            "paddingBottom": 16,
            "strokes": [{"type": "SOLID", "color": {"r": 0, "g": 0, "b": 0, "a": 1}}],
            "strokeWeight": 1,
            "cornerRadius": 12,
            "effects": [{
                "type": "DROP_SHADOW",
                "radius": 4,
                "offset": {"x": 0, "y": 2},
                "color": {"r": 0, "g": 0, "b": 0, "a": 0.25},
            }],
            "children": [
                {
                    "id": "title",
                    "type": "TEXT",
                    "name": "Title",
                    "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 20},
                    "style": {"fontFamily": "Inter", "fontSize": 16, "fontWeight": 600},
                },
            ],
        }
        tokens = _extract(tree).tokens
        keys = {(t.category, t.key) for t in tokens}

        assert (TokenCategory.TYPOGRAPHY, "Inter|16|600") in keys
        assert (TokenCategory.SPACING, "8") in keys
        assert (TokenCategory.SPACING, "16") in keys
        assert (TokenCategory.EFFECT, "drop_shadow|0|2|4|0|#00000040") in keys
        assert (TokenCategory.BORDER, "stroke|1|#000000FF") in keys
        assert (TokenCategory.BORDER, "radius|12") in keys

        spacing_16 = next(t for t in tokens if t.key == "16")
        # top and bottom padding on one node count once
        assert spacing_16.usage_count == 1

    def test_output_sorted_by_category_then_key(self, screen_file):
        tokens = StyleExtractor().extract(parse(screen_file).registry).tokens
        order = [t.category for t in tokens]
        assert order == sorted(order, key=[
            TokenCategory.COLOR, TokenCategory.TYPOGRAPHY, TokenCategory.SPACING,
            TokenCategory.EFFECT, TokenCategory.BORDER,
        ].index)
        colors = [t.key for t in tokens if t.category == TokenCategory.COLOR]
        assert colors == sorted(colors)

    def test_every_token_has_references(self, screen_file):
        tokens = StyleExtractor().extract(parse(screen_file).registry).tokens
        assert tokens
        for token in tokens:
            assert token.reference_node_ids
            assert token.usage_count == len(token.reference_node_ids)

    def test_extraction_is_idempotent(self, screen_file):
        registry = parse(screen_file).registry
        first = StyleExtractor().extract(registry).tokens
        second = StyleExtractor().extract(registry).tokens
        assert first == second
