"""Pipeline runtime settings: tunable parameters for context extraction.

All values read from environment variables with sensible defaults.
Import from here instead of hardcoding; per-run overrides go through
``ExtractionConfig`` in design_context/orchestrator.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


PIPELINE_VERSION = "1.0.0"


# =====================================================================
# Orchestration
# =====================================================================

# Per-stage budget (seconds). A stage that exceeds it resolves to its
# default value with a TimeoutWarning.
STAGE_TIMEOUT = _float("DESIGN_CONTEXT_STAGE_TIMEOUT", 3.0)


# =====================================================================
# Analysis
# =====================================================================

# Geometry tolerance (px) for gap uniformity and alignment checks
LAYOUT_TOLERANCE = _float("DESIGN_CONTEXT_LAYOUT_TOLERANCE", 2.0)

# Upper bound on master -> nested master composition walks
MAX_COMPONENT_DEPTH = _int("DESIGN_CONTEXT_MAX_COMPONENT_DEPTH", 64)

# WCAG AA contrast minimums (normal / large text)
CONTRAST_MIN_RATIO = _float("DESIGN_CONTEXT_CONTRAST_MIN_RATIO", 4.5)
CONTRAST_MIN_RATIO_LARGE = _float("DESIGN_CONTEXT_CONTRAST_MIN_RATIO_LARGE", 3.0)


# =====================================================================
# Validation
# =====================================================================

# validation_level: "minimal" | "standard" (default) | "strict"
#   minimal: referential integrity only
#   standard: + value ranges and cardinality
#   strict: + bounds overflow and duplicate sibling names
VALIDATION_LEVEL = _str("DESIGN_CONTEXT_VALIDATION_LEVEL", "standard")


# =====================================================================
# Cache
# =====================================================================

CACHE_TTL_SECONDS = _float("DESIGN_CONTEXT_CACHE_TTL", 600.0)
CACHE_MAX_ENTRIES = _int("DESIGN_CONTEXT_CACHE_MAX_ENTRIES", 256)


# =====================================================================
# Logging
# =====================================================================

# Empty string disables file handlers (console only)
LOG_DIR = _str("DESIGN_CONTEXT_LOG_DIR", "")
