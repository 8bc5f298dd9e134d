"""Channel-aware extraction of the decoration fields from line-item properties."""
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from .properties import normalize_properties, parse_embedded_pairs, property_pairs

LINE_COUNT = 6


# ---------- Channels ----------
@dataclass(frozen=True)
class Storefront:
    label: str = "Online Store"


@dataclass(frozen=True)
class Marketplace:
    vendor: str


Channel = Union[Storefront, Marketplace]

DEFAULT_MARKETPLACES: Tuple[str, ...] = ("amazon",)


def resolve_channel(label: Optional[str], marketplaces: Iterable[str] = DEFAULT_MARKETPLACES) -> Channel:
    key = (label or "").strip().lower()
    if key and key in {m.strip().lower() for m in marketplaces}:
        return Marketplace(vendor=key)
    return Storefront(label=(label or "").strip() or "Online Store")


# ---------- Result ----------
@dataclass(frozen=True)
class SemanticFields:
    background_color: str = ""
    text_color: str = ""
    font_style: str = ""
    motif_code: str = ""
    text_lines: Tuple[str, ...] = ("",) * LINE_COUNT
    line_styles: Tuple[str, ...] = ("",) * LINE_COUNT

    def text_line(self, n: int) -> str:
        return self.text_lines[n - 1]

    def line_style(self, n: int) -> str:
        return self.line_styles[n - 1]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


# ---------- Storefront ----------
# Candidate property names per field, first non-empty match wins.
BACKGROUND_COLOR_KEYS = ("background color", "background colour", "tape colour", "tape color")
TEXT_COLOR_KEYS = ("text color", "text colour", "foreground colour", "foreground color")
FONT_STYLE_KEYS = ("text style", "font style", "select a font for single line text")
MOTIF_KEY_PREFIXES = ("motifs", "motif code")


def text_line_keys(n: int) -> Tuple[str, ...]:
    return (f"text line {n}", f"line {n} text")


def line_style_keys(n: int) -> Tuple[str, ...]:
    return (f"line {n} style code", f"line {n} style")


def first_match(props: Mapping[str, Any], candidates: Iterable[str]) -> str:
    for key in candidates:
        val = _text(props.get(key))
        if val:
            return val
    return ""


def collect_motifs(props: Mapping[str, Any], prefixes: Iterable[str] = MOTIF_KEY_PREFIXES) -> str:
    prefixes = tuple(prefixes)
    values = [_text(v) for k, v in props.items() if k.startswith(prefixes)]
    return ",".join(v for v in values if v)


def extract_storefront(raw: Any) -> SemanticFields:
    props = normalize_properties(raw)
    return SemanticFields(
        background_color=first_match(props, BACKGROUND_COLOR_KEYS),
        text_color=first_match(props, TEXT_COLOR_KEYS),
        font_style=first_match(props, FONT_STYLE_KEYS),
        motif_code=collect_motifs(props),
        text_lines=tuple(first_match(props, text_line_keys(n)) for n in range(1, LINE_COUNT + 1)),
        line_styles=tuple(first_match(props, line_style_keys(n)) for n in range(1, LINE_COUNT + 1)),
    )


# ---------- Marketplace ----------
_LINE_TEXT_RE = re.compile(r"line.*text", re.IGNORECASE)
_DIGITS_RE = re.compile(r"\d+")


def line_slot(name: str) -> int:
    """Line number embedded in a property name, 1 when there is none."""
    m = _DIGITS_RE.search(name or "")
    if not m:
        return 1
    return int(m.group(0))


def classify_marketplace_property(name: str) -> Optional[str]:
    lowered = (name or "").lower()
    if _LINE_TEXT_RE.search(lowered):
        return "line"
    if "motif" in lowered:
        return "motif"
    if "color" in lowered or "colour" in lowered:
        return "color"
    return None


def motif_code_from_option(option: str) -> str:
    """``"M12 - Football"`` -> ``"M12"``."""
    return option.split("-")[0].strip()


def extract_marketplace(raw: Any) -> SemanticFields:
    background = text_color = font_style = motif = ""
    lines: List[str] = [""] * LINE_COUNT
    for name, value in property_pairs(raw):
        kind = classify_marketplace_property(name)
        if kind is None:
            continue
        parsed = parse_embedded_pairs(value)
        if kind == "line":
            slot = line_slot(name)
            if not 1 <= slot <= LINE_COUNT:
                continue
            if parsed.get("colorname"):
                text_color = parsed["colorname"]
            if parsed.get("fontfamily"):
                font_style = parsed["fontfamily"]
            if parsed.get("text"):
                lines[slot - 1] = parsed["text"]
        elif kind == "motif":
            code = motif_code_from_option(parsed.get("optionvalue", ""))
            if code:
                motif = code
        elif kind == "color":
            if parsed.get("optionvalue"):
                background = parsed["optionvalue"]
    return SemanticFields(
        background_color=background,
        text_color=text_color,
        font_style=font_style,
        motif_code=motif,
        text_lines=tuple(lines),
    )


# ---------- Dispatch ----------
EXTRACTORS: Dict[Type[Any], Callable[[Any], SemanticFields]] = {
    Storefront: extract_storefront,
    Marketplace: extract_marketplace,
}


def extract_fields(raw: Any, channel: Channel) -> SemanticFields:
    extractor = EXTRACTORS.get(type(channel), extract_storefront)
    return extractor(raw)
