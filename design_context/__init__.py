"""Design context extraction pipeline.

Turns a raw design-node tree into a validated ContextBundle of design
tokens, component relationships, layout patterns, prototype flows and
per-node semantic intent.

Subpackages:
- nodes: NodeTypeTag, NormalizedNode, NodeRegistry and the NodeParser
- extractors: style tokens, component mapping, layout and prototype flows
- analysis: semantic intent, design health, bundle validation
"""

from .cache import ContextCache
from .cancellation import CancellationToken
from .errors import DesignContextError, ExtractionCancelled, MalformedInputError, WarningKind
from .models import ContextBundle
from .nodes import NodeParser, NodeRegistry, parse
from .orchestrator import (
    ContextOrchestrator,
    ExtractionConfig,
    ExtractionResult,
    PipelineState,
    extract_context,
)

__all__ = [
    "ContextCache",
    "CancellationToken",
    "DesignContextError",
    "ExtractionCancelled",
    "MalformedInputError",
    "WarningKind",
    "ContextBundle",
    "NodeParser",
    "NodeRegistry",
    "parse",
    "ContextOrchestrator",
    "ExtractionConfig",
    "ExtractionResult",
    "PipelineState",
    "extract_context",
]
