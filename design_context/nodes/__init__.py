"""Node layer: normalized node model, registry, and the raw-tree parser."""

from .registry import (
    CONTAINER_TYPES,
    VECTOR_TYPES,
    Bounds,
    ComponentRef,
    Interaction,
    NodeRegistry,
    NodeStyle,
    NodeTypeTag,
    NormalizedNode,
    Paint,
)
from .parser import SYNTHETIC_ROOT_ID, NodeParser, ParseResult, parse

__all__ = [
    "CONTAINER_TYPES",
    "VECTOR_TYPES",
    "Bounds",
    "ComponentRef",
    "Interaction",
    "NodeRegistry",
    "NodeStyle",
    "NodeTypeTag",
    "NormalizedNode",
    "Paint",
    "SYNTHETIC_ROOT_ID",
    "NodeParser",
    "ParseResult",
    "parse",
]
