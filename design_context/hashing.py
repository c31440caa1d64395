"""Canonical JSON serialization and input hashing.

Byte-stable serialization is what makes the determinism guarantee
checkable: two runs over the same raw tree must hash and serialize to
identical bytes (metadata.extractedAt excepted).
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional


def canonical_dumps(obj: Any) -> str:
    """Canonical JSON serialization.

    Rules:
    - Sorted keys
    - Stable separators (",", ":")
    - UTF-8 (no ASCII escaping)
    - Lists keep their order (callers sort before serializing)
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_input_hash(raw_tree: Any, raw_interactions: Optional[Any] = None) -> str:
    """Content address for an extraction request.

    Covers both the node tree and the optional interaction metadata, since
    either changes the resulting bundle.
    """
    payload = {"tree": raw_tree, "interactions": raw_interactions}
    return f"sha256:{sha256_hex(canonical_dumps(payload))}"
