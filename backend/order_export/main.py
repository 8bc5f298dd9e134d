import logging
import os
from datetime import timezone
from functools import partial
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .config import ExportConfig, load_export_config
from .db import get_session, init_db
from .errors import EmptyResultError, InvalidInputError, ShopifyAPIError
from .exporter import TagOrder, run_export
from .ingest import order_from_graphql, parse_iso8601
from .shopify import add_order_tag, credentials_configured, fetch_orders
from .store import (
    get_orders_by_ids,
    get_orders_in_window,
    history_to_dict,
    list_export_history,
    list_orders,
    order_to_export_dict,
    upsert_order,
)
from .webhooks import router as webhooks_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- FastAPI ----------
app = FastAPI(title="Order Export API", version="1.0.0")
app.include_router(webhooks_router)

# CORS (relaxed for the embedded admin; tighten in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Order lists with line items get large
app.add_middleware(GZipMiddleware, minimum_size=500)


# ---------- Dependencies ----------
def get_export_config() -> ExportConfig:
    return load_export_config()


def get_tagger(config: ExportConfig = Depends(get_export_config)) -> Optional[TagOrder]:
    if not config.tagging_enabled:
        return None
    if not credentials_configured():
        logger.warning("export tagging enabled but Shopify credentials are missing; skipping tags")
        return None
    return partial(add_order_tag, tag=config.exported_tag)


class ExportBody(BaseModel):
    orders: Optional[Any] = None
    order_ids: Optional[List[str]] = None
    filters: Optional[Dict[str, Any]] = None


# ---------- Routes ----------
@app.get("/api/health")
async def health():
    return {"ok": True}


@app.get("/api/orders")
async def get_orders(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=250),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    rows = await list_orders(db, search=search, limit=limit, offset=offset)
    return {"orders": [order_to_export_dict(r) for r in rows], "limit": limit, "offset": offset}


@app.post("/api/orders/sync")
async def sync_orders(
    pages: int = Query(5, ge=1, le=50),
    config: ExportConfig = Depends(get_export_config),
    db: AsyncSession = Depends(get_session),
):
    if not credentials_configured():
        raise HTTPException(status_code=400, detail="Shopify credentials not configured")
    try:
        nodes = await fetch_orders(max_pages=pages)
    except ShopifyAPIError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    for node in nodes:
        await upsert_order(db, order_from_graphql(node, config.marketplaces))
    logger.info("synced %d orders from Shopify", len(nodes))
    return {"ok": True, "count": len(nodes)}


async def _orders_for_export(body: ExportBody, db: AsyncSession) -> Any:
    if body.orders is not None:
        return body.orders
    if body.order_ids:
        return [order_to_export_dict(r) for r in await get_orders_by_ids(db, body.order_ids)]
    filters = body.filters or {}
    start = parse_iso8601(filters.get("startTime"))
    end = parse_iso8601(filters.get("endTime"))
    if start is None and end is None:
        return None
    rows = await get_orders_in_window(
        db,
        start.astimezone(timezone.utc) if start else None,
        end.astimezone(timezone.utc) if end else None,
    )
    return [order_to_export_dict(r) for r in rows]


@app.post("/api/export")
async def export_orders(
    body: ExportBody,
    config: ExportConfig = Depends(get_export_config),
    tag_order: Optional[TagOrder] = Depends(get_tagger),
    db: AsyncSession = Depends(get_session),
):
    orders = await _orders_for_export(body, db)
    try:
        result = await run_export(
            orders,
            jsonable_encoder(body.filters),
            config=config,
            session=db,
            tag_order=tag_order,
        )
    except InvalidInputError:
        raise HTTPException(status_code=400, detail="No orders to export")
    except EmptyResultError:
        raise HTTPException(status_code=422, detail="No rows generated for CSV")
    return {
        "success": True,
        "filename": result.filename,
        "filePath": result.file_path,
        "downloadPath": result.download_path,
        "rowCount": result.row_count,
        "orderCount": result.order_count,
        "skipped": result.skipped,
        "tagged": result.tagged,
        "tagFailures": result.tag_failures,
    }


@app.get("/api/export-history")
async def export_history(
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
):
    rows = await list_export_history(db, limit=limit)
    return {"exportOrders": [history_to_dict(r) for r in rows]}


# ---------- Startup ----------
@app.on_event("startup")
async def _init_db_tables():
    await init_db()


# --------- Produced CSV files (mounted last) ---------
EXPORT_DIR = os.path.abspath(load_export_config().export_dir)
os.makedirs(EXPORT_DIR, exist_ok=True)
app.mount("/exports", StaticFiles(directory=EXPORT_DIR), name="exports")
