"""Downstream analysis: semantic intent, design health, colour contrast, bundle validation."""

from .accessibility import AccessibilityAnalyzer, contrast_ratio
from .health import DesignHealthAnalyzer, grade_for
from .semantic import SemanticAnalyzer
from .validator import VALIDATION_LEVELS, Validator

__all__ = [
    "AccessibilityAnalyzer",
    "contrast_ratio",
    "DesignHealthAnalyzer",
    "grade_for",
    "SemanticAnalyzer",
    "VALIDATION_LEVELS",
    "Validator",
]
