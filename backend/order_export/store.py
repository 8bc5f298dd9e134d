from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .ingest import format_order_date
from .models import ExportHistory, OrderRecord

_ORDER_FIELDS = (
    "order_number",
    "processed_at",
    "refunds",
    "customer",
    "total",
    "payment_status",
    "fulfillment_status",
    "channels",
    "items",
    "tags",
    "delivery_method",
    "delivery_status",
    "po_number",
    "customer_code",
    "customer_order_ref",
    "line_items",
    "address",
)


# ---------- Orders ----------
async def upsert_order(db: AsyncSession, record: Dict[str, Any]) -> OrderRecord:
    row = await db.scalar(select(OrderRecord).where(OrderRecord.id == record["id"]))
    if not row:
        row = OrderRecord(id=record["id"])
        db.add(row)
    for key in _ORDER_FIELDS:
        if key in record:
            setattr(row, key, record[key])
    await db.commit()
    return row


async def list_orders(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[OrderRecord]:
    stmt = select(OrderRecord)
    s = (search or "").strip().lower()
    if s:
        like = f"%{s}%"
        stmt = stmt.where(or_(
            func.lower(OrderRecord.order_number).like(like),
            func.lower(OrderRecord.customer).like(like),
        ))
    stmt = stmt.order_by(OrderRecord.processed_at.desc(), OrderRecord.id.desc()).offset(offset).limit(limit)
    return list((await db.scalars(stmt)).all())


async def get_orders_by_ids(db: AsyncSession, ids: Sequence[str]) -> List[OrderRecord]:
    """Orders for the given ids, in request order. Unknown ids are dropped."""
    wanted = [str(i) for i in ids if str(i).strip()]
    if not wanted:
        return []
    rows = (await db.scalars(select(OrderRecord).where(OrderRecord.id.in_(wanted)))).all()
    by_id = {r.id: r for r in rows}
    return [by_id[i] for i in wanted if i in by_id]


async def get_orders_in_window(
    db: AsyncSession,
    start: Optional[datetime],
    end: Optional[datetime],
) -> List[OrderRecord]:
    stmt = select(OrderRecord)
    if start is not None:
        stmt = stmt.where(OrderRecord.processed_at >= start)
    if end is not None:
        stmt = stmt.where(OrderRecord.processed_at <= end)
    stmt = stmt.order_by(OrderRecord.processed_at.asc(), OrderRecord.id.asc())
    return list((await db.scalars(stmt)).all())


def order_to_export_dict(rec: OrderRecord) -> Dict[str, Any]:
    """Camel-cased snapshot in the shape the exporter and the admin UI consume."""
    return {
        "id": rec.id,
        "orderNumber": rec.order_number,
        "name": rec.order_number,
        "date": format_order_date(rec.processed_at),
        "processedAt": rec.processed_at.isoformat() if rec.processed_at else None,
        "refunds": rec.refunds,
        "customer": rec.customer or "",
        "total": rec.total,
        "paymentStatus": rec.payment_status,
        "fulfillmentStatus": rec.fulfillment_status,
        "channels": rec.channels,
        "items": rec.items or 0,
        "tags": list(rec.tags or []),
        "deliveryMethod": rec.delivery_method,
        "deliveryStatus": rec.delivery_status,
        "poNumber": rec.po_number or "",
        "customerCode": rec.customer_code or "",
        "customerOrderRef": rec.customer_order_ref or "",
        "lineItems": list(rec.line_items or []),
        "address": dict(rec.address or {}),
    }


# ---------- Export history ----------
async def record_export(
    db: AsyncSession,
    *,
    filename: str,
    filters: Any,
    order_count: int,
    file_path: str,
    exported_at: Optional[datetime] = None,
) -> ExportHistory:
    row = ExportHistory(
        filename=filename,
        exported_at=exported_at or datetime.now(timezone.utc),
        filters=filters,
        order_count=order_count,
        file_path=file_path,
    )
    db.add(row)
    await db.commit()
    await db.refresh(row)
    return row


async def list_export_history(db: AsyncSession, limit: int = 200) -> List[ExportHistory]:
    stmt = select(ExportHistory).order_by(ExportHistory.exported_at.desc(), ExportHistory.id.desc()).limit(limit)
    return list((await db.scalars(stmt)).all())


def history_to_dict(row: ExportHistory) -> Dict[str, Any]:
    return {
        "id": row.id,
        "filename": row.filename,
        "exported_at": row.exported_at.isoformat() if row.exported_at else None,
        "filters": row.filters,
        "order_count": row.order_count,
        "file_path": row.file_path,
    }
