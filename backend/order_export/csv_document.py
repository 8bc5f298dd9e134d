"""CSV rendering for the partner file.

Byte-exact output: UTF-8 BOM, header line, one line per row, ``\\n`` between
lines, no trailing newline. A field is quoted only when it holds a comma,
double quote, CR or LF; inner quotes are doubled.
"""
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

BOM = "\ufeff"
_NEEDS_QUOTES = (",", '"', "\r", "\n")


def escape_field(value: Any) -> str:
    if value is None:
        return ""
    s = str(value)
    escaped = s.replace('"', '""')
    if any(ch in s for ch in _NEEDS_QUOTES):
        return f'"{escaped}"'
    return escaped


def render_line(fields: Iterable[Any]) -> str:
    return ",".join(escape_field(f) for f in fields)


def render_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    lines = [render_line(headers)]
    lines.extend(render_line(r) for r in rows)
    return BOM + "\n".join(lines)


def filename_stamp(when: Optional[datetime]) -> str:
    if not isinstance(when, datetime):
        return "all"
    if when.tzinfo is not None:
        when = when.astimezone()
    return when.strftime("%Y%m%d_%H%M")


def export_filename(when: Optional[datetime]) -> str:
    """``orders_20251019_1405.csv`` from local time, ``orders_all.csv`` without one."""
    return f"orders_{filename_stamp(when)}.csv"
