"""Turn Shopify order payloads (REST webhooks, Admin GraphQL nodes) into mirror records."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .extractors import DEFAULT_MARKETPLACES, Marketplace, resolve_channel
from .properties import property_pairs
from .rows import quantity_cell

DEFAULT_CHANNEL = "Online Store"


def parse_iso8601(s: Optional[str]) -> Optional[datetime]:
    if not s or not isinstance(s, str):
        return None
    st = s.strip()
    if st.endswith("Z"):
        st = st[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(st)
    except ValueError:
        return None
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_order_date(dt: Optional[datetime]) -> str:
    """``"19 Oct at 3:05 PM"``, the way the Shopify admin lists orders."""
    if not isinstance(dt, datetime):
        return ""
    hour = dt.hour % 12 or 12
    ampm = "AM" if dt.hour < 12 else "PM"
    return f"{dt.day} {dt.strftime('%b')} at {hour}:{dt.minute:02d} {ampm}"


def _capitalize_status(val: Optional[str]) -> Optional[str]:
    if not val:
        return None
    s = str(val).replace("_", " ").strip()
    return s[:1].upper() + s[1:].lower()


def _gid_tail(val: Any) -> str:
    s = str(val or "")
    return s.rsplit("/", 1)[-1] if s.startswith("gid://") else s


def _join_notes(refunds: Any) -> Optional[str]:
    notes = [str((r or {}).get("note")) for r in (refunds or []) if (r or {}).get("note")]
    return ", ".join(notes) or None


def _parse_tags(val: Any) -> List[str]:
    if isinstance(val, list):
        return [str(x).strip() for x in val if str(x).strip()]
    if isinstance(val, str):
        # Webhooks send tags as a comma-separated string
        return [p.strip() for p in val.split(",") if p.strip()]
    return []


def _quantity(val: Any) -> int:
    """Summable quantity; junk counts as zero instead of failing the webhook."""
    return int(quantity_cell(val) or 0)


def shape_properties(raw: Any, marketplace: bool) -> Any:
    """Storefront orders keep a name->value mapping of non-empty values.

    Marketplace orders keep the ordered ``{name, value}`` list untouched because
    their values are multi-line ``key : value`` blobs parsed at export time.
    """
    pairs = property_pairs(raw)
    if marketplace:
        return [{"name": k, "value": v} for k, v in pairs]
    return {k: v for k, v in pairs if k and v}


def channel_label(source: Optional[str], marketplaces: Iterable[str] = DEFAULT_MARKETPLACES) -> str:
    src = (source or "").strip().lower()
    for m in marketplaces:
        if m and m in src:
            return m.capitalize()
    return DEFAULT_CHANNEL


def _address(shipping: Dict[str, Any], fallback: Dict[str, Any]) -> Dict[str, Any]:
    a = shipping or fallback or {}

    def g(*keys: str) -> str:
        for k in keys:
            v = a.get(k)
            if v:
                return str(v)
        return ""

    return {
        "name": g("name"),
        "firstName": g("first_name", "firstName"),
        "lastName": g("last_name", "lastName"),
        "company": g("company"),
        "address1": g("address1"),
        "address2": g("address2"),
        "address3": g("city"),
        "address4": g("province"),
        "city": g("city"),
        "province": g("province"),
        "provinceCode": g("province_code", "provinceCode"),
        "country": g("country", "country_name", "countryName"),
        "countryCode": g("country_code", "countryCodeV2", "countryCode"),
        "zip": g("zip", "postal_code"),
        "phone": g("phone"),
    }


# ---------- REST webhook payloads ----------
def order_from_webhook(payload: Dict[str, Any], marketplaces: Iterable[str] = DEFAULT_MARKETPLACES) -> Dict[str, Any]:
    marketplaces = tuple(marketplaces)
    channels = channel_label(payload.get("source_name"), marketplaces)
    is_marketplace = isinstance(resolve_channel(channels, marketplaces), Marketplace)
    customer = payload.get("customer") or {}

    line_items = []
    items_total = 0
    for item in payload.get("line_items") or []:
        qty = item.get("current_quantity")
        if qty is None:
            qty = item.get("quantity")
        items_total += _quantity(qty)
        line_items.append({
            "productCode": str(item.get("product_id") or ""),
            "sku": item.get("sku") or "",
            "quantity": qty,
            "properties": shape_properties(item.get("properties"), is_marketplace),
        })

    shipping_lines = payload.get("shipping_lines") or []
    return {
        "id": str(payload.get("id")),
        "order_number": str(payload.get("name") or payload.get("order_number") or ""),
        "processed_at": parse_iso8601(payload.get("processed_at") or payload.get("created_at")),
        "refunds": _join_notes(payload.get("refunds")),
        "customer": f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip(),
        "total": str(((payload.get("current_total_price_set") or {}).get("shop_money") or {}).get("amount") or "0.00"),
        "payment_status": _capitalize_status(payload.get("financial_status")) or "Payment pending",
        "fulfillment_status": payload.get("fulfillment_status") or "Unfulfilled",
        "channels": channels,
        "items": items_total,
        "tags": _parse_tags(payload.get("tags")),
        "delivery_method": ((shipping_lines[0] or {}).get("code") if shipping_lines else None) or "Shipping not required",
        "delivery_status": payload.get("fulfillment_status"),
        "po_number": payload.get("po_number") or "",
        "customer_code": str(customer.get("id") or ""),
        "customer_order_ref": str(payload.get("id") or ""),
        "line_items": line_items,
        "address": _address(payload.get("shipping_address") or {}, customer.get("default_address") or {}),
    }


# ---------- Admin GraphQL nodes (polling) ----------
def _nodes(conn: Any) -> List[Dict[str, Any]]:
    if isinstance(conn, list):
        return [n for n in conn if isinstance(n, dict)]
    if not isinstance(conn, dict):
        return []
    if isinstance(conn.get("nodes"), list):
        return [n for n in conn["nodes"] if isinstance(n, dict)]
    return [(e or {}).get("node") or {} for e in (conn.get("edges") or [])]


def order_from_graphql(node: Dict[str, Any], marketplaces: Iterable[str] = DEFAULT_MARKETPLACES) -> Dict[str, Any]:
    marketplaces = tuple(marketplaces)
    channel_name = (((node.get("channelInformation") or {}).get("channelDefinition") or {}).get("channelName")) or DEFAULT_CHANNEL
    is_marketplace = isinstance(resolve_channel(channel_name, marketplaces), Marketplace)
    customer = node.get("customer") or {}

    line_items = []
    items_total = 0
    for li in _nodes(node.get("lineItems")):
        qty = li.get("currentQuantity")
        if qty is None:
            qty = li.get("quantity")
        items_total += _quantity(qty)
        line_items.append({
            "productCode": _gid_tail((li.get("product") or {}).get("id")),
            "sku": li.get("sku") or "",
            "quantity": qty,
            "properties": shape_properties(li.get("customAttributes"), is_marketplace),
        })

    shipping_lines = _nodes(node.get("shippingLines"))
    money = ((node.get("currentTotalPriceSet") or {}).get("shopMoney") or {})
    display_name = customer.get("displayName") or f"{customer.get('firstName') or ''} {customer.get('lastName') or ''}".strip()
    return {
        "id": node["id"],
        "order_number": str(node.get("name") or ""),
        "processed_at": parse_iso8601(node.get("processedAt") or node.get("createdAt")),
        "refunds": _join_notes(node.get("refunds")),
        "customer": display_name,
        "total": str(money.get("amount") or "0.00"),
        "payment_status": _capitalize_status(node.get("displayFinancialStatus")) or "Payment pending",
        "fulfillment_status": _capitalize_status(node.get("displayFulfillmentStatus")) or "Unfulfilled",
        "channels": channel_name,
        "items": items_total,
        "tags": _parse_tags(node.get("tags")),
        "delivery_method": (shipping_lines[0].get("code") if shipping_lines else None) or "Shipping not required",
        "delivery_status": node.get("displayFulfillmentStatus"),
        "po_number": node.get("poNumber") or "",
        "customer_code": _gid_tail(customer.get("id")),
        "customer_order_ref": _gid_tail(node["id"]),
        "line_items": line_items,
        "address": _address(node.get("shippingAddress") or {}, customer.get("defaultAddress") or {}),
    }
