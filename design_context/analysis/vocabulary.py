"""Closed intent vocabulary and signal weights for semantic inference."""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Tuple

# Order matters: it breaks score ties.
VOCABULARY: Tuple[str, ...] = (
    "button",
    "call-to-action",
    "input",
    "checkbox",
    "toggle",
    "navigation",
    "tab",
    "link",
    "heading",
    "image",
    "icon",
    "card",
    "list",
    "modal",
    "header",
    "footer",
)

# Baseline intent for plain TEXT layers; ranks after every vocabulary intent
TEXT_INTENT = "text"
UNKNOWN_INTENT = "unknown"

INTENT_ORDER: Tuple[str, ...] = VOCABULARY + (TEXT_INTENT,)

INTERACTIVE_INTENTS: FrozenSet[str] = frozenset({
    "button", "call-to-action", "input", "checkbox", "toggle", "tab", "link",
})

# Variant values that mark a component family as interactive
INTERACTIVE_STATES: FrozenSet[str] = frozenset({"hover", "pressed", "disabled", "focus", "focused"})


# =====================================================================
# Signal weights
# =====================================================================

WEIGHT_NAME = 0.5
WEIGHT_STRUCTURE = 0.35
WEIGHT_COMPONENT = 0.3
WEIGHT_INTERACTIVE_STATE = 0.1
WEIGHT_LAYOUT = 0.2
WEIGHT_TOKEN_ACCENT = 0.15
WEIGHT_TYPE_BASELINE = 0.2

# HSV saturation at or above which a button fill reads as an accent
ACCENT_SATURATION = 0.35

# Minimum participants for navigation / list layout signals
LAYOUT_MIN_PARTICIPANTS = 3


# =====================================================================
# Name matching
# =====================================================================

# Whole-word synonyms (after camelCase / separator splitting)
_SYNONYMS: Dict[str, str] = {
    "button": "button",
    "btn": "button",
    "cta": "call-to-action",
    "input": "input",
    "textfield": "input",
    "textbox": "input",
    "field": "input",
    "search": "input",
    "checkbox": "checkbox",
    "check": "checkbox",
    "toggle": "toggle",
    "switch": "toggle",
    "navigation": "navigation",
    "nav": "navigation",
    "navbar": "navigation",
    "menu": "navigation",
    "breadcrumb": "navigation",
    "tab": "tab",
    "tabs": "tab",
    "link": "link",
    "anchor": "link",
    "heading": "heading",
    "headline": "heading",
    "title": "heading",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading",
    "image": "image",
    "img": "image",
    "photo": "image",
    "picture": "image",
    "avatar": "image",
    "thumbnail": "image",
    "icon": "icon",
    "ico": "icon",
    "card": "card",
    "tile": "card",
    "list": "list",
    "listview": "list",
    "modal": "modal",
    "dialog": "modal",
    "popup": "modal",
    "sheet": "modal",
    "header": "header",
    "topbar": "header",
    "appbar": "header",
    "footer": "footer",
}

# Multi-word phrases, matched as contiguous word runs
_PHRASES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("call", "to", "action"), "call-to-action"),
    (("text", "field"), "input"),
    (("text", "input"), "input"),
    (("tab", "bar"), "navigation"),
    (("nav", "bar"), "navigation"),
    (("app", "bar"), "header"),
    (("top", "bar"), "header"),
    (("list", "item"), "list"),
)


def match_intents(words: List[str]) -> List[str]:
    """Vocabulary intents named by a word list, in vocabulary order."""
    found = set()
    for size_words, intent in _PHRASES:
        size = len(size_words)
        for i in range(len(words) - size + 1):
            if tuple(words[i:i + size]) == size_words:
                found.add(intent)
    for word in words:
        intent = _SYNONYMS.get(word)
        if intent is not None:
            found.add(intent)
    return [intent for intent in VOCABULARY if intent in found]
