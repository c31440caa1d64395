"""Shared fixtures for pipeline tests.

Provides:
- A small but complete Figma-style file response (component set with
  hover variant, login screen with input/button/nav bar, prototype link)
- Helpers for checking registry consistency
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from design_context.nodes.registry import NodeRegistry


def _box(x: float, y: float, w: float, h: float) -> Dict[str, float]:
    return {"x": x, "y": y, "width": w, "height": h}


def _solid(r: float, g: float, b: float, a: float = 1.0) -> Dict[str, Any]:
    return {"type": "SOLID", "color": {"r": r, "g": g, "b": b, "a": a}}


def _text(node_id: str, name: str, x: float, y: float, w: float = 60, h: float = 20) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "TEXT",
        "name": name,
        "characters": name,
        "absoluteBoundingBox": _box(x, y, w, h),
        "fills": [_solid(0, 0, 0)],
        "style": {"fontFamily": "Inter", "fontSize": 14, "fontWeight": 400},
    }


@pytest.fixture
def screen_file() -> Dict[str, Any]:
    """Figma file response with one page holding a component set and two screens."""
    brand = _solid(0.2, 0.4, 1.0)
    grey = _solid(0.8, 0.8, 0.8)
    tabs: List[Dict[str, Any]] = [
        {
            "id": f"1:{20 + i}",
            "type": "RECTANGLE",
            "name": f"Tab {i}",
            "absoluteBoundingBox": _box(8 + i * 88, 750, 80, 48),
            "fills": [grey],
        }
        for i in range(4)
    ]
    return {
        "name": "Sample",
        "styles": {"S:brand": {"name": "Brand/Primary", "styleType": "FILL"}},
        "document": {
            "id": "0:0",
            "type": "DOCUMENT",
            "name": "Document",
            "children": [{
                "id": "0:1",
                "type": "CANVAS",
                "name": "Page 1",
                "children": [
                    {
                        "id": "10:0",
                        "type": "COMPONENT_SET",
                        "name": "Button",
                        "absoluteBoundingBox": _box(0, 0, 300, 60),
                        "children": [
                            {
                                "id": "10:1",
                                "type": "COMPONENT",
                                "name": "State=Default",
                                "absoluteBoundingBox": _box(10, 10, 120, 40),
                                "fills": [brand],
                                "styles": {"fill": "S:brand"},
                                "cornerRadius": 8,
                                "children": [_text("10:2", "Label", 20, 20)],
                            },
                            {
                                "id": "10:3",
                                "type": "COMPONENT",
                                "name": "State=Hover",
                                "absoluteBoundingBox": _box(150, 10, 120, 40),
                                "fills": [brand],
                                "cornerRadius": 8,
                                "children": [_text("10:4", "Label", 160, 20)],
                            },
                        ],
                    },
                    {
                        "id": "1:1",
                        "type": "FRAME",
                        "name": "Login Screen",
                        "absoluteBoundingBox": _box(0, 100, 375, 812),
                        "fills": [_solid(1, 1, 1)],
                        "children": [
                            {
                                "id": "1:2",
                                "type": "FRAME",
                                "name": "Email",
                                "absoluteBoundingBox": _box(16, 300, 343, 48),
                                "strokes": [grey],
                                "strokeWeight": 1,
                                "children": [_text("1:3", "you@example.com", 28, 314, 200)],
                            },
                            {
                                "id": "1:4",
                                "type": "INSTANCE",
                                "name": "Submit",
                                "componentId": "10:1",
                                "absoluteBoundingBox": _box(16, 360, 343, 48),
                                "fills": [brand],
                                "reactions": [{
                                    "trigger": {"type": "ON_CLICK"},
                                    "actions": [{
                                        "type": "NODE",
                                        "destinationId": "2:1",
                                        "navigation": "NAVIGATE",
                                        "transition": {"type": "DISSOLVE"},
                                    }],
                                }],
                                "children": [_text("1:5", "Sign in", 160, 374)],
                            },
                            {
                                "id": "1:6",
                                "type": "FRAME",
                                "name": "Bottom",
                                "absoluteBoundingBox": _box(0, 740, 375, 72),
                                "children": tabs,
                            },
                        ],
                    },
                    {
                        "id": "2:1",
                        "type": "FRAME",
                        "name": "Home Screen",
                        "absoluteBoundingBox": _box(500, 100, 375, 812),
                        "fills": [_solid(1, 1, 1)],
                    },
                ],
            }],
        },
    }


def assert_registry_consistent(registry: NodeRegistry) -> None:
    """Every parent/child link resolves and agrees in both directions."""
    for node in registry:
        if node.parent_id is not None:
            parent = registry.get(node.parent_id)
            assert parent is not None, f"{node.id} has dangling parent {node.parent_id}"
            assert node.id in parent.child_ids
        for child_id in node.child_ids:
            child = registry.get(child_id)
            assert child is not None, f"{node.id} has dangling child {child_id}"
            assert child.parent_id == node.id


@pytest.fixture
def registry_consistent():
    return assert_registry_consistent
