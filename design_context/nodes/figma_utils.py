"""Figma utility functions: raw property readers + colour/name helpers.

Provides deterministic conversion from raw Figma node dicts to the typed
value objects held by NormalizedNode (bounds, paints, effects, typography),
plus the colour quantization and name slugging shared by the extractors.
All readers tolerate missing or mistyped fields and fall back to defaults.
"""

import colorsys
import math
import re
from typing import Any, Dict, List, Optional, Tuple

import logging

from .registry import RGBA, Bounds, Effect, IDENTITY_TRANSFORM, Paint, Transform, TypeStyle

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def _finite(value: Any) -> Optional[float]:
    """float(value) when it is a finite JSON number, else None.

    Bools, NaN, +/-inf and integers too large for a float are all rejected.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def as_number(value: Any, default: float = 0.0) -> float:
    """Coerce a raw numeric field; anything non-finite falls back to default."""
    number = _finite(value)
    return default if number is None else number


def is_number(value: Any) -> bool:
    return _finite(value) is not None


def format_px(value: float) -> str:
    """Stable px string: 8.0 -> '8', 7.5 -> '7.5'."""
    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:g}"


# ---------------------------------------------------------------------------
# Bounds / transform
# ---------------------------------------------------------------------------


def extract_bounds(node: Dict[str, Any]) -> Tuple[Optional[Bounds], Tuple[str, ...]]:
    """Extract bounding box from a raw node.

    Looks at absoluteBoundingBox, then bounds, then top-level x/y/width/height.
    Returns (bounds, coerced field names). Bounds is None when no usable box
    is present. An absent x/y reads as 0; a non-numeric one also reads as
    0 and is listed in the coerced names.
    """
    bbox = node.get("absoluteBoundingBox")
    if not isinstance(bbox, dict):
        bbox = node.get("bounds")
    if not isinstance(bbox, dict):
        if is_number(node.get("width")) and is_number(node.get("height")):
            bbox = node
        else:
            return None, ()
    if not (is_number(bbox.get("width")) and is_number(bbox.get("height"))):
        return None, ()
    coerced = tuple(
        key for key in ("x", "y") if key in bbox and not is_number(bbox[key])
    )
    return Bounds(
        x=as_number(bbox.get("x")),
        y=as_number(bbox.get("y")),
        width=as_number(bbox.get("width")),
        height=as_number(bbox.get("height")),
    ), coerced


def extract_transform(node: Dict[str, Any]) -> Transform:
    matrix = node.get("relativeTransform")
    if (
        isinstance(matrix, list)
        and len(matrix) == 2
        and all(isinstance(row, list) and len(row) == 3 for row in matrix)
        and all(is_number(v) for row in matrix for v in row)
    ):
        return (
            (float(matrix[0][0]), float(matrix[0][1]), float(matrix[0][2])),
            (float(matrix[1][0]), float(matrix[1][1]), float(matrix[1][2])),
        )
    return IDENTITY_TRANSFORM


# ---------------------------------------------------------------------------
# Paints / effects / typography
# ---------------------------------------------------------------------------


def _read_color(color: Any) -> Optional[RGBA]:
    if not isinstance(color, dict):
        return None
    return (
        min(max(as_number(color.get("r")), 0.0), 1.0),
        min(max(as_number(color.get("g")), 0.0), 1.0),
        min(max(as_number(color.get("b")), 0.0), 1.0),
        min(max(as_number(color.get("a"), 1.0), 0.0), 1.0),
    )


def read_paints(raw: Any) -> Tuple[Paint, ...]:
    """Read a Figma fills[] / strokes[] list. Non-dict entries are skipped."""
    if not isinstance(raw, list):
        return ()
    paints: List[Paint] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        image_ref = entry.get("imageRef")
        paints.append(Paint(
            type=str(entry.get("type", "SOLID")).upper(),
            visible=entry.get("visible", True) is not False,
            opacity=min(max(as_number(entry.get("opacity"), 1.0), 0.0), 1.0),
            color=_read_color(entry.get("color")),
            image_ref=image_ref if isinstance(image_ref, str) else None,
        ))
    return tuple(paints)


def read_effects(raw: Any) -> Tuple[Effect, ...]:
    if not isinstance(raw, list):
        return ()
    effects: List[Effect] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        offset = entry.get("offset") if isinstance(entry.get("offset"), dict) else {}
        effects.append(Effect(
            type=str(entry.get("type", "")).upper(),
            visible=entry.get("visible", True) is not False,
            radius=as_number(entry.get("radius")),
            offset_x=as_number(offset.get("x")),
            offset_y=as_number(offset.get("y")),
            spread=as_number(entry.get("spread")),
            color=_read_color(entry.get("color")),
        ))
    return tuple(effects)


def read_typography(node: Dict[str, Any]) -> Optional[TypeStyle]:
    """Extract typography from a TEXT node's style (or typeStyle) dict."""
    style = node.get("style")
    if not isinstance(style, dict) or not style.get("fontFamily"):
        # Fallback: some Figma exports use "typeStyle" instead of "style"
        alt = node.get("typeStyle")
        if isinstance(alt, dict):
            style = alt
    if not isinstance(style, dict):
        return None
    family = style.get("fontFamily")
    size = style.get("fontSize")
    if not family and not is_number(size):
        return None
    line_height = style.get("lineHeightPx")
    letter_spacing = style.get("letterSpacing")
    return TypeStyle(
        font_family=str(family or ""),
        font_size=as_number(size),
        font_weight=as_number(style.get("fontWeight"), 400.0),
        line_height=float(line_height) if is_number(line_height) else None,
        letter_spacing=float(letter_spacing) if is_number(letter_spacing) else None,
    )


def read_corner_radius(node: Dict[str, Any]) -> Tuple[Optional[float], Optional[Tuple[float, float, float, float]]]:
    """Return (uniform radius, per-corner radii); either may be None."""
    radii = node.get("rectangleCornerRadii")
    if isinstance(radii, list) and len(radii) == 4 and all(is_number(r) for r in radii):
        values = tuple(float(r) for r in radii)
        if len(set(values)) == 1:
            return (values[0] if values[0] > 0 else None), None
        return None, values  # type: ignore[return-value]
    radius = node.get("cornerRadius")
    if is_number(radius) and radius > 0:
        return float(radius), None
    return None, None


# ---------------------------------------------------------------------------
# Colour helpers
# ---------------------------------------------------------------------------


def quantize_channel(value: float) -> int:
    return max(0, min(255, round(value * 255)))


def rgba_to_hex8(color: RGBA, opacity: float = 1.0) -> str:
    """Convert 0-1 RGBA (times paint opacity) to an 8-bit '#RRGGBBAA' key."""
    r, g, b, a = color
    return (
        f"#{quantize_channel(r):02X}{quantize_channel(g):02X}"
        f"{quantize_channel(b):02X}{quantize_channel(a * opacity):02X}"
    )


def hex_to_rgba(hex_color: str) -> Optional[RGBA]:
    """Parse '#RRGGBB' or '#RRGGBBAA' into 0-1 channels; None if malformed."""
    if not hex_color.startswith("#") or len(hex_color) not in (7, 9):
        return None
    try:
        channels = [int(hex_color[i:i + 2], 16) / 255 for i in range(1, len(hex_color), 2)]
    except ValueError:
        return None
    if len(channels) == 3:
        channels.append(1.0)
    return channels[0], channels[1], channels[2], channels[3]


def hex_saturation(hex_color: str) -> float:
    """HSV saturation (0-1) of a '#RRGGBB[AA]' string."""
    if not hex_color.startswith("#") or len(hex_color) < 7:
        return 0.0
    try:
        r = int(hex_color[1:3], 16) / 255
        g = int(hex_color[3:5], 16) / 255
        b = int(hex_color[5:7], 16) / 255
    except ValueError:
        return 0.0
    return colorsys.rgb_to_hsv(r, g, b)[1]


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

_FIGMA_AUTO_NAME_RE = re.compile(
    r"^(Frame|Group|Rectangle|Ellipse|Line|Vector|Component|Instance|Image|"
    r"Union|Subtract|Intersect|Exclude|Mask\s*Group)"
    r"\s*\d+$",
    re.IGNORECASE,
)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def is_auto_name(name: str) -> bool:
    """Figma auto-generated layer names, e.g. 'Frame 1321317615'."""
    return bool(_FIGMA_AUTO_NAME_RE.match(name.strip()))


def split_name_words(name: str) -> List[str]:
    """Lowercase word list from a layer name.

    "PrimaryButton / Large" -> ["primary", "button", "large"]
    "nav-bar_v2" -> ["nav", "bar", "v2"]
    """
    spaced = _CAMEL_BOUNDARY_RE.sub(" ", name)
    return [w for w in re.split(r"[^0-9A-Za-z]+", spaced.lower()) if w]


def slugify_token_name(name: str) -> str:
    """Normalize a style/layer name to a token name.

    Examples:
        "Brand/Primary 100%" -> "brand-primary-100"
        "Text Color / Secondary" -> "text-color-secondary"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "unnamed"
