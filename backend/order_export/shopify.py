"""Admin GraphQL access: order polling for the mirror and post-export tagging."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import httpx

from .config import SHOPIFY_API_VERSION, resolve_store_settings
from .errors import DownstreamTaggingError, ShopifyAPIError

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
BASE_DELAY = 0.35


def graphql_url(domain: str) -> str:
    return f"https://{domain}/admin/api/{SHOPIFY_API_VERSION}/graphql.json"


def _backoff(attempt: int) -> float:
    return BASE_DELAY * (2 ** attempt) + random.uniform(0, 0.15)


async def shopify_graphql(
    query: str,
    variables: Dict[str, Any] | None = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    domain, token = resolve_store_settings()
    if not domain or not token:
        raise ShopifyAPIError("Shopify credentials not configured", status_code=400)
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-Shopify-Access-Token": token,
    }

    last_exc: Optional[Exception] = None
    url = graphql_url(domain)
    async with httpx.AsyncClient(timeout=30, transport=transport) as client:
        for attempt in range(MAX_RETRIES):
            try:
                r = await client.post(url, headers=headers, json={"query": query, "variables": variables or {}})
                if r.status_code in (429, 430, 503):
                    if attempt < MAX_RETRIES - 1:
                        ra = r.headers.get("Retry-After")
                        try:
                            wait = float(ra) if ra else _backoff(attempt)
                        except ValueError:
                            wait = _backoff(attempt)
                        await asyncio.sleep(wait)
                        continue
                    raise ShopifyAPIError("Shopify API is throttling requests. Please try again shortly.", status_code=429)

                r.raise_for_status()
                data = r.json()
                if "errors" in data:
                    errs = data.get("errors") or []
                    is_throttled = any(((e.get("extensions") or {}).get("code") or "").upper() == "THROTTLED" for e in errs)
                    if is_throttled and attempt < MAX_RETRIES - 1:
                        await asyncio.sleep(_backoff(attempt))
                        continue
                    raise ShopifyAPIError(f"Shopify GraphQL errors: {errs}")
                return data["data"]
            except ShopifyAPIError as e:
                last_exc = e
                break
            except httpx.HTTPStatusError as e:
                last_exc = ShopifyAPIError(f"Shopify HTTP {e.response.status_code}: {e.response.text[:500]}")
                break
            except httpx.HTTPError as e:
                last_exc = e
                # Transient network failures get the same backoff
                if attempt < MAX_RETRIES - 1:
                    logger.warning("Shopify request failed (attempt %d): %s", attempt + 1, e)
                    await asyncio.sleep(_backoff(attempt))
                    continue
                break

    if isinstance(last_exc, ShopifyAPIError):
        raise last_exc
    raise ShopifyAPIError(f"Shopify request failed: {last_exc}")


# ---------- Tagging ----------
TAGS_ADD_MUTATION = """
mutation AddTag($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    userErrors { field message }
  }
}
"""


def order_gid(order_id: Any) -> str:
    s = str(order_id or "").strip()
    if s.startswith("gid://"):
        return s
    return f"gid://shopify/Order/{s}"


async def add_order_tag(order_id: Any, tag: str, **kwargs: Any) -> Dict[str, Any]:
    gid = order_gid(order_id)
    try:
        data = await shopify_graphql(TAGS_ADD_MUTATION, {"id": gid, "tags": [tag]}, **kwargs)
    except ShopifyAPIError as e:
        raise DownstreamTaggingError(gid, e.detail) from e
    errs = (((data or {}).get("tagsAdd") or {}).get("userErrors")) or []
    if errs:
        raise DownstreamTaggingError(gid, f"Shopify tag add failed: {errs}")
    return data


# ---------- Polling ----------
ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $query: String) {
  orders(first: $first, after: $after, query: $query, sortKey: PROCESSED_AT, reverse: true) {
    edges {
      cursor
      node {
        id
        name
        createdAt
        processedAt
        poNumber
        tags
        displayFinancialStatus
        displayFulfillmentStatus
        currentTotalPriceSet { shopMoney { amount currencyCode } }
        channelInformation { channelDefinition { channelName } }
        refunds { note }
        customer {
          id
          firstName
          lastName
          displayName
          defaultAddress { name company address1 address2 city province provinceCode country countryCodeV2 zip phone }
        }
        shippingAddress { name firstName lastName company address1 address2 city province provinceCode country countryCodeV2 zip phone }
        shippingLines(first: 5) { nodes { code } }
        lineItems(first: 100) {
          nodes {
            sku
            quantity
            currentQuantity
            product { id }
            customAttributes { key value }
          }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


async def fetch_orders(
    *,
    page_size: int = 50,
    max_pages: int = 5,
    query: Optional[str] = None,
    **kwargs: Any,
) -> List[Dict[str, Any]]:
    """Raw order nodes, newest first, following the cursor for up to ``max_pages``."""
    nodes: List[Dict[str, Any]] = []
    cursor: Optional[str] = None
    for _ in range(max(1, max_pages)):
        data = await shopify_graphql(
            ORDERS_QUERY,
            {"first": page_size, "after": cursor, "query": query},
            **kwargs,
        )
        orders = data.get("orders") or {}
        for edge in orders.get("edges") or []:
            node = (edge or {}).get("node")
            if node:
                nodes.append(node)
        page_info: Dict[str, Any] = orders.get("pageInfo") or {}
        cursor = page_info.get("endCursor")
        if not page_info.get("hasNextPage") or not cursor:
            break
    return nodes


def credentials_configured() -> bool:
    domain, token = resolve_store_settings()
    return bool(domain and token)
