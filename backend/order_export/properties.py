"""Line-item property bags.

Shopify hands us properties in two shapes: a plain ``{name: value}`` mapping
(what we store for storefront orders) or the raw ordered list of
``{"name": ..., "value": ...}`` pairs (what marketplace channels keep, because
their values carry embedded ``key : value`` lines and order matters).
"""
from typing import Any, Dict, List, Mapping, Tuple


def property_pairs(raw: Any) -> List[Tuple[str, Any]]:
    """Ordered (name, value) view over either property shape.

    Entries without a string name are dropped.
    """
    pairs: List[Tuple[str, Any]] = []
    if isinstance(raw, Mapping):
        for k, v in raw.items():
            if isinstance(k, str):
                pairs.append((k, v))
        return pairs
    if isinstance(raw, (list, tuple)):
        for entry in raw:
            if not isinstance(entry, Mapping):
                continue
            name = entry.get("name")
            if name is None:
                name = entry.get("key")
            if isinstance(name, str):
                pairs.append((name, entry.get("value")))
    return pairs


def normalize_properties(raw: Any) -> Dict[str, Any]:
    """Lower-case and trim every property name. Last write wins on collision."""
    out: Dict[str, Any] = {}
    for name, value in property_pairs(raw):
        out[name.strip().lower()] = value
    return out


def parse_embedded_pairs(text: Any) -> Dict[str, str]:
    """Parse a marketplace value such as ``"optionValue : Red\\ntext : John"``.

    Each line is split on its first colon; keys are trimmed and lower-cased,
    values trimmed. Lines without a colon or with an empty key are ignored.
    """
    if not isinstance(text, str):
        return {}
    out: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        if not key:
            continue
        out[key] = value.strip()
    return out
