"""WCAG colour-contrast report over the palette and the text layers.

Two passes:
- palette: every pair of opaque Color tokens, in token order
- text: each visible TEXT node's topmost solid fill against the nearest
  ancestor carrying an opaque solid fill. Translucent text is blended
  onto that background first. Text with no such ancestor is listed as
  unchecked rather than assumed to pass.

Contrast is ``(L1 + 0.05) / (L2 + 0.05)`` over sRGB relative luminance.
Text of 24px, or 18px at weight 700 and up, counts as large and is held
to the lower ratio.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .. import settings
from ..cancellation import CancellationToken, checkpoint
from ..models import (
    AccessibilityReport,
    ContrastPair,
    DesignToken,
    TextContrastCheck,
    TokenCategory,
)
from ..nodes.figma_utils import hex_to_rgba, rgba_to_hex8
from ..nodes.registry import RGBA, NodeRegistry, NormalizedNode, Paint, TypeStyle

logger = logging.getLogger(__name__)

LARGE_TEXT_SIZE = 24.0
LARGE_BOLD_TEXT_SIZE = 18.0
BOLD_WEIGHT = 700.0


def _linear(channel: float) -> float:
    if channel <= 0.03928:
        return channel / 12.92
    return ((channel + 0.055) / 1.055) ** 2.4


def relative_luminance(color: RGBA) -> float:
    return 0.2126 * _linear(color[0]) + 0.7152 * _linear(color[1]) + 0.0722 * _linear(color[2])


def contrast_ratio(a: RGBA, b: RGBA) -> float:
    """WCAG contrast ratio in [1, 21]; alpha is ignored."""
    la, lb = relative_luminance(a), relative_luminance(b)
    return (max(la, lb) + 0.05) / (min(la, lb) + 0.05)


def blend(foreground: RGBA, background: RGBA) -> RGBA:
    """Composite a translucent foreground onto an opaque background."""
    alpha = foreground[3]
    return (
        foreground[0] * alpha + background[0] * (1 - alpha),
        foreground[1] * alpha + background[1] * (1 - alpha),
        foreground[2] * alpha + background[2] * (1 - alpha),
        1.0,
    )


def is_large_text(typography: Optional[TypeStyle]) -> bool:
    if typography is None:
        return False
    if typography.font_size >= LARGE_TEXT_SIZE:
        return True
    return typography.font_size >= LARGE_BOLD_TEXT_SIZE and typography.font_weight >= BOLD_WEIGHT


def _top_solid(node: NormalizedNode) -> Optional[Paint]:
    # Figma paints are listed bottom-up
    solids = [
        p for p in node.style.visible_fills
        if p.type == "SOLID" and p.color is not None and p.effective_alpha > 0
    ]
    return solids[-1] if solids else None


def _quantized(paint: Paint) -> Tuple[str, RGBA]:
    hex_key = rgba_to_hex8(paint.color, paint.opacity)
    return hex_key, hex_to_rgba(hex_key)


class AccessibilityAnalyzer:
    def __init__(
        self,
        min_ratio: Optional[float] = None,
        min_ratio_large: Optional[float] = None,
    ):
        self.min_ratio = min_ratio if min_ratio is not None else settings.CONTRAST_MIN_RATIO
        self.min_ratio_large = (
            min_ratio_large if min_ratio_large is not None else settings.CONTRAST_MIN_RATIO_LARGE
        )

    def analyze(
        self,
        registry: NodeRegistry,
        tokens: Sequence[DesignToken] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> AccessibilityReport:
        pairs = self._palette_pairs(tokens)

        checks: List[TextContrastCheck] = []
        unchecked: List[str] = []
        for node in registry:
            checkpoint(cancel_token)
            if not node.is_text or not node.visible:
                continue
            paint = _top_solid(node)
            if paint is None:
                continue
            check = self._text_check(node, paint, registry)
            if check is None:
                unchecked.append(node.id)
            else:
                checks.append(check)

        report = AccessibilityReport(
            required_ratio=self.min_ratio,
            palette_pairs=tuple(pairs),
            palette_violations=sum(1 for p in pairs if not p.passes),
            text_checks=tuple(checks),
            text_violations=sum(1 for c in checks if not c.passes),
            unchecked_text_node_ids=tuple(unchecked),
        )
        logger.info(
            "AccessibilityAnalyzer: %d/%d palette pairs below %.1f:1, %d/%d text layers failing",
            report.palette_violations, len(pairs), self.min_ratio,
            report.text_violations, len(checks),
        )
        return report

    def _palette_pairs(self, tokens: Sequence[DesignToken]) -> List[ContrastPair]:
        colors: List[Tuple[str, RGBA]] = []
        for token in tokens:
            if token.category != TokenCategory.COLOR:
                continue
            rgba = hex_to_rgba(token.key)
            # Translucent colours have no fixed contrast without a backdrop
            if rgba is None or rgba[3] < 1.0:
                continue
            colors.append((token.key, rgba))

        pairs: List[ContrastPair] = []
        for i, (key_a, rgba_a) in enumerate(colors):
            for key_b, rgba_b in colors[i + 1:]:
                ratio = contrast_ratio(rgba_a, rgba_b)
                pairs.append(ContrastPair(
                    color_a=key_a,
                    color_b=key_b,
                    ratio=round(ratio, 2),
                    passes=ratio >= self.min_ratio,
                ))
        return pairs

    def _text_check(
        self,
        node: NormalizedNode,
        paint: Paint,
        registry: NodeRegistry,
    ) -> Optional[TextContrastCheck]:
        background_node = None
        background_paint = None
        seen = {node.id}
        ancestor = registry.get(node.parent_id)
        while ancestor is not None and ancestor.id not in seen:
            seen.add(ancestor.id)
            candidate = _top_solid(ancestor)
            if candidate is not None and _quantized(candidate)[1][3] >= 1.0:
                background_node, background_paint = ancestor, candidate
                break
            ancestor = registry.get(ancestor.parent_id)
        if background_node is None:
            return None

        fg_hex, fg = _quantized(paint)
        bg_hex, bg = _quantized(background_paint)
        ratio = contrast_ratio(blend(fg, bg), bg)
        large = is_large_text(node.style.typography)
        required = self.min_ratio_large if large else self.min_ratio
        return TextContrastCheck(
            node_id=node.id,
            background_node_id=background_node.id,
            foreground=fg_hex,
            background=bg_hex,
            ratio=round(ratio, 2),
            required=required,
            large_text=large,
            passes=ratio >= required,
        )
