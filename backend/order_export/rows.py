from typing import Any, List, Mapping

from .extractors import LINE_COUNT, SemanticFields

# Fixed column layout expected by the fulfilment partner. Order matters.
CSV_HEADERS: List[str] = [
    "CUSTOMER CODE",
    "CUSTOMER ORDER REF",
    "PRODUCT CODE",
    "QUANTITY REQUIRED",
    "BACKGROUND (TAPE) COLOUR",
    "FOREGROUND (TEXT) COLOUR",
    "MOTIF CODE",
    "LINE 1 STYLE CODE",
    "LINE 1 TEXT",
    "LINE 2 STYLE CODE",
    "LINE 2 TEXT",
    "LINE 3 STYLE CODE",
    "LINE 3 TEXT",
    "LINE 4 STYLE CODE",
    "LINE 4 TEXT",
    "LINE 5 STYLE CODE",
    "LINE 5 TEXT",
    "LINE 6 STYLE CODE",
    "LINE 6 TEXT",
    "DELIVERY NAME",
    "DELIVERY ADDRESS LINE 1",
    "DELIVERY ADDRESS LINE 2",
    "DELIVERY ADDRESS LINE 3",
    "DELIVERY ADDRESS LINE 4",
    "DELIVERY COUNTRY",
    "DELIVERY POST CODE",
    "DELIVERY METHOD",
]


def _s(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _first(*values: Any) -> str:
    for v in values:
        s = _s(v).strip()
        if s:
            return s
    return ""


def quantity_cell(value: Any) -> str:
    """Quantities render as digits; missing, zero or junk render empty."""
    if isinstance(value, bool) or value is None:
        return ""
    try:
        qty = int(str(value).strip())
    except (TypeError, ValueError):
        return ""
    return str(qty) if qty else ""


def delivery_name(order: Mapping[str, Any]) -> str:
    customer = order.get("customer")
    if isinstance(customer, Mapping):
        first_last = f"{_s(customer.get('first_name') or customer.get('firstName'))} {_s(customer.get('last_name') or customer.get('lastName'))}"
        return _first(customer.get("displayName"), first_last)
    return _first(customer)


def resolve_line_styles(fields: SemanticFields) -> List[str]:
    """Per-line style codes.

    Line 1 falls back to the generic font style; every later line inherits the
    previous line's resolved style unless it has its own.
    """
    styles: List[str] = []
    previous = fields.font_style
    for n in range(1, LINE_COUNT + 1):
        style = fields.line_style(n) or previous
        styles.append(style)
        previous = style
    return styles


def build_row(
    order: Mapping[str, Any],
    line_item: Mapping[str, Any],
    fields: SemanticFields,
    *,
    customer_code: str = "",
) -> List[str]:
    address = order.get("address") if isinstance(order.get("address"), Mapping) else {}
    styles = resolve_line_styles(fields)
    row: List[str] = [
        _first(customer_code, order.get("customerCode")),
        _first(order.get("customerOrderRef"), order.get("orderNumber"), order.get("name")),
        _first(line_item.get("sku"), line_item.get("productCode")),
        quantity_cell(line_item.get("quantity")),
        fields.background_color,
        fields.text_color,
        fields.motif_code,
    ]
    for n in range(1, LINE_COUNT + 1):
        row.append(styles[n - 1])
        row.append(fields.text_line(n))
    row.extend([
        delivery_name(order),
        _s(address.get("address1")),
        _s(address.get("address2")),
        _s(address.get("address3")),
        _s(address.get("address4")),
        _s(address.get("country")),
        _s(address.get("zip")),
        _s(order.get("deliveryMethod")),
    ])
    return row
