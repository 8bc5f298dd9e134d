import base64
import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import load_export_config, webhook_secret
from .db import get_session
from .ingest import order_from_webhook
from .store import upsert_order

logger = logging.getLogger(__name__)

router = APIRouter()

UPSERT_TOPICS = ("orders/create", "orders/updated")
ACK_TOPICS = ("orders/paid",)


def verify_shopify_hmac(raw_body: bytes, recv_hmac: str, secret: str) -> bool:
    if not secret:
        return True
    calc = base64.b64encode(hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()).decode()
    return hmac.compare_digest((recv_hmac or "").strip(), calc)


@router.post("/api/shopify/webhooks/orders")
async def orders_webhook(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(default=None),
    x_shopify_topic: Optional[str] = Header(default=None),
    x_shopify_shop_domain: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_session),
):
    raw = await request.body()
    secret = webhook_secret()
    if not secret:
        logger.warning("SHOPIFY_API_SECRET not set; accepting webhook from %s unverified", x_shopify_shop_domain or "?")
    if not verify_shopify_hmac(raw, x_shopify_hmac_sha256 or "", secret):
        raise HTTPException(status_code=401, detail="bad hmac")

    topic = (x_shopify_topic or "").strip().lower()
    if topic in ACK_TOPICS:
        return {"ok": True, "ignored": topic}
    if topic not in UPSERT_TOPICS:
        raise HTTPException(status_code=404, detail=f"unhandled topic: {topic or '-'}")

    try:
        data = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid JSON body")
    if not isinstance(data, dict) or data.get("id") is None:
        raise HTTPException(status_code=400, detail="order payload without id")

    record = order_from_webhook(data, load_export_config().marketplaces)
    await upsert_order(db, record)
    logger.info("webhook %s upserted order %s (%s)", topic, record["id"], record["order_number"])
    return {"ok": True, "id": record["id"]}
