"""Fact extractors that run concurrently over one NodeRegistry."""

from .components import ComponentMapper, ComponentMapResult, parse_variant_descriptor
from .layout import FLOW_CONFIDENCE_FACTOR, LayoutAnalyzer, gap_confidence
from .prototype import PrototypeMapper, PrototypeResult
from .style import StyleExtractor, StyleResult

__all__ = [
    "ComponentMapper",
    "ComponentMapResult",
    "parse_variant_descriptor",
    "FLOW_CONFIDENCE_FACTOR",
    "LayoutAnalyzer",
    "gap_confidence",
    "PrototypeMapper",
    "PrototypeResult",
    "StyleExtractor",
    "StyleResult",
]
