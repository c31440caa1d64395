"""Design token extraction: one pass over the registry.

Walks every node once, computes a normalized key per visual value and
merges identical keys into a single DesignToken with usage tracking:

- Color: SOLID fills/strokes, RGBA quantized to 8-bit channels (#RRGGBBAA)
- Typography: TEXT nodes, ``family|size|weight``
- Spacing: auto-layout itemSpacing and paddings, px value
- Effect: drop/inner shadows and layer/background blurs
- Border: stroke width + colour, corner radius

Fully transparent paints never become colour tokens; the nodes carrying
them are reported as ``none`` markers instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..cancellation import CancellationToken, checkpoint
from ..models import TOKEN_CATEGORY_ORDER, DesignToken, TokenCategory
from ..nodes.figma_utils import format_px, quantize_channel, rgba_to_hex8, slugify_token_name
from ..nodes.registry import NodeRegistry, NodeTypeTag, NormalizedNode, Paint

logger = logging.getLogger(__name__)

# Style-ref keys that name each kind of value
_FILL_STYLE_KEYS = ("fill", "fills")
_STROKE_STYLE_KEYS = ("stroke", "strokes")
_TEXT_STYLE_KEYS = ("text",)
_EFFECT_STYLE_KEYS = ("effect", "effects")

_SHADOW_TYPES = ("DROP_SHADOW", "INNER_SHADOW")
_BLUR_TYPES = ("LAYER_BLUR", "BACKGROUND_BLUR")


@dataclass
class StyleResult:
    tokens: List[DesignToken] = field(default_factory=list)
    # Nodes carrying at least one fully transparent paint
    none_markers: List[str] = field(default_factory=list)


@dataclass
class _Candidate:
    category: TokenCategory
    key: str
    value: Any
    name_hint: str = ""


@dataclass
class _Accumulator:
    category: TokenCategory
    key: str
    value: Any
    node_ids: List[str] = field(default_factory=list)
    name: str = ""
    name_depth: int = -1


class StyleExtractor:
    """Aggregates visual properties into deduplicated design tokens."""

    def extract(
        self,
        registry: NodeRegistry,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StyleResult:
        buckets: Dict[Tuple[TokenCategory, str], _Accumulator] = {}
        none_markers: List[str] = []

        for node in registry:
            checkpoint(cancel_token)
            depth = registry.depth(node.id)
            candidates, transparent = self._candidates(node, registry)
            if transparent:
                none_markers.append(node.id)

            seen_here = set()
            for cand in candidates:
                bucket_key = (cand.category, cand.key)
                if bucket_key in seen_here:
                    continue
                seen_here.add(bucket_key)

                acc = buckets.get(bucket_key)
                if acc is None:
                    acc = _Accumulator(category=cand.category, key=cand.key, value=cand.value)
                    buckets[bucket_key] = acc
                acc.node_ids.append(node.id)

                # Lowest depth wins; on a tie the first one encountered stays.
                if cand.name_hint and (acc.name_depth < 0 or depth < acc.name_depth):
                    acc.name = cand.name_hint
                    acc.name_depth = depth

        order = {cat: i for i, cat in enumerate(TOKEN_CATEGORY_ORDER)}
        tokens = [
            DesignToken(
                id=f"{acc.category.value.lower()}:{acc.key}",
                category=acc.category,
                name=slugify_token_name(acc.name) if acc.name else _fallback_name(acc),
                key=acc.key,
                value=acc.value,
                usage_count=len(acc.node_ids),
                reference_node_ids=tuple(acc.node_ids),
            )
            for acc in sorted(buckets.values(), key=lambda a: (order[a.category], a.key))
            if acc.node_ids
        ]

        logger.info(
            "StyleExtractor: %d nodes -> %d tokens (%d transparent markers)",
            len(registry), len(tokens), len(none_markers),
        )
        return StyleResult(tokens=tokens, none_markers=none_markers)

    # -- per-node candidates --

    def _candidates(
        self, node: NormalizedNode, registry: NodeRegistry,
    ) -> Tuple[List[_Candidate], bool]:
        style = node.style
        refs = dict(node.style_refs)
        candidates: List[_Candidate] = []
        transparent = False

        # Colors
        for paints, style_keys in (
            (style.fills, _FILL_STYLE_KEYS),
            (style.strokes, _STROKE_STYLE_KEYS),
        ):
            hint = _style_name(refs, style_keys, registry) or node.name
            for paint in paints:
                hex_key = _solid_hex(paint)
                if hex_key is None:
                    continue
                if is_transparent(paint):
                    transparent = True
                    continue
                candidates.append(_Candidate(TokenCategory.COLOR, hex_key, hex_key, hint))

        # Typography
        typo = style.typography
        if node.type == NodeTypeTag.TEXT and typo is not None and typo.font_family:
            key = f"{typo.font_family}|{format_px(typo.font_size)}|{int(round(typo.font_weight))}"
            candidates.append(_Candidate(
                TokenCategory.TYPOGRAPHY,
                key,
                {
                    "fontFamily": typo.font_family,
                    "fontSize": typo.font_size,
                    "fontWeight": int(round(typo.font_weight)),
                },
                _style_name(refs, _TEXT_STYLE_KEYS, registry) or node.name,
            ))

        # Spacing
        for amount in (style.item_spacing,) + style.padding:
            if amount > 0:
                candidates.append(_Candidate(
                    TokenCategory.SPACING, format_px(amount), round(amount, 2), node.name,
                ))

        # Effects
        effect_hint = _style_name(refs, _EFFECT_STYLE_KEYS, registry) or node.name
        for effect in style.effects:
            if not effect.visible:
                continue
            if effect.type in _SHADOW_TYPES:
                color = rgba_to_hex8(effect.color) if effect.color else "#00000040"
                key = "|".join((
                    effect.type.lower(), format_px(effect.offset_x), format_px(effect.offset_y),
                    format_px(effect.radius), format_px(effect.spread), color,
                ))
                candidates.append(_Candidate(TokenCategory.EFFECT, key, {
                    "type": effect.type.lower(),
                    "x": effect.offset_x,
                    "y": effect.offset_y,
                    "blur": effect.radius,
                    "spread": effect.spread,
                    "color": color,
                }, effect_hint))
            elif effect.type in _BLUR_TYPES:
                key = f"{effect.type.lower()}|{format_px(effect.radius)}"
                candidates.append(_Candidate(TokenCategory.EFFECT, key, {
                    "type": effect.type.lower(),
                    "radius": effect.radius,
                }, effect_hint))

        # Borders
        if style.has_border:
            stroke_color = "none"
            for paint in style.visible_strokes:
                hex_key = _solid_hex(paint)
                if hex_key is not None:
                    stroke_color = hex_key
                    break
            key = f"stroke|{format_px(style.stroke_weight)}|{stroke_color}"
            candidates.append(_Candidate(TokenCategory.BORDER, key, {
                "width": style.stroke_weight,
                "color": stroke_color,
            }, _style_name(refs, _STROKE_STYLE_KEYS, registry) or node.name))
        if style.corner_radius is not None:
            candidates.append(_Candidate(
                TokenCategory.BORDER,
                f"radius|{format_px(style.corner_radius)}",
                {"radius": style.corner_radius},
                node.name,
            ))
        elif style.corner_radii is not None:
            key = "radius|" + ",".join(format_px(r) for r in style.corner_radii)
            candidates.append(_Candidate(
                TokenCategory.BORDER, key, {"radii": list(style.corner_radii)}, node.name,
            ))

        return candidates, transparent


def _solid_hex(paint: Paint) -> Optional[str]:
    if not paint.visible or paint.type != "SOLID" or paint.color is None:
        return None
    return rgba_to_hex8(paint.color, paint.opacity)


def _style_name(refs: Dict[str, str], keys: Tuple[str, ...], registry: NodeRegistry) -> str:
    for key in keys:
        style_id = refs.get(key)
        if style_id and style_id in registry.style_names:
            return registry.style_names[style_id]
    return ""


def _fallback_name(acc: _Accumulator) -> str:
    return slugify_token_name(f"{acc.category.value}-{acc.key}")


def is_transparent(paint: Paint) -> bool:
    return quantize_channel(paint.effective_alpha) == 0
