"""Order export: orders in, partner CSV + history record out.

``build_export`` is the pure part (validation, extraction, rows, rendering).
``run_export`` adds the side effects: file write, history record, and the
best-effort "exported" tag on each order in Shopify.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .config import ExportConfig
from .csv_document import export_filename, render_csv
from .errors import (
    DownstreamTaggingError,
    EmptyResultError,
    InvalidInputError,
    MalformedLineItemsWarning,
    NoInputError,
)
from .extractors import DEFAULT_MARKETPLACES, extract_fields, resolve_channel
from .rows import CSV_HEADERS, build_row
from .store import record_export

logger = logging.getLogger(__name__)

TagOrder = Callable[[str], Awaitable[Any]]


@dataclass
class ExportDocument:
    filename: str
    content: str
    row_count: int
    order_count: int
    skipped: List[MalformedLineItemsWarning] = field(default_factory=list)


@dataclass
class ExportResult:
    filename: str
    file_path: str
    download_path: str
    row_count: int
    order_count: int
    skipped: List[str] = field(default_factory=list)
    tagged: List[str] = field(default_factory=list)
    tag_failures: List[str] = field(default_factory=list)


def _log_event(payload: Mapping[str, Any]) -> None:
    logger.info(json.dumps({"component": "order_export", **payload}, ensure_ascii=False, default=str))


def order_ref(order: Any, index: int) -> str:
    if not isinstance(order, Mapping):
        return f"#{index}"
    for key in ("orderNumber", "name", "id"):
        if order.get(key):
            return str(order[key])
    return f"#{index}"


def build_export(
    orders: Any,
    *,
    customer_code: str = "",
    marketplaces: Iterable[str] = DEFAULT_MARKETPLACES,
    now: Optional[datetime] = None,
) -> ExportDocument:
    if orders is None or not isinstance(orders, (list, tuple)):
        raise InvalidInputError("No orders to export")
    if len(orders) == 0:
        raise NoInputError("No orders to export")
    marketplaces = tuple(marketplaces)

    rows: List[List[str]] = []
    skipped: List[MalformedLineItemsWarning] = []
    for index, order in enumerate(orders):
        line_items = order.get("lineItems") if isinstance(order, Mapping) else None
        if not isinstance(line_items, (list, tuple)) or not line_items:
            warning = MalformedLineItemsWarning(order_ref(order, index), index)
            logger.warning("skipping order: %s", warning)
            skipped.append(warning)
            continue
        channel = resolve_channel(order.get("channels"), marketplaces)
        for item in line_items:
            if not isinstance(item, Mapping):
                item = {}
            fields = extract_fields(item.get("properties"), channel)
            rows.append(build_row(order, item, fields, customer_code=customer_code))

    if not rows:
        raise EmptyResultError("No rows generated for CSV")

    return ExportDocument(
        filename=export_filename(now if now is not None else datetime.now()),
        content=render_csv(CSV_HEADERS, rows),
        row_count=len(rows),
        order_count=len(orders),
        skipped=skipped,
    )


def stage_document(doc: ExportDocument, export_dir: str) -> Path:
    """Write the document to a temp file beside its final name.

    Nothing under ``doc.filename`` is touched until ``publish_document``.
    """
    directory = Path(export_dir)
    directory.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=directory, prefix=f".{doc.filename}.", suffix=".tmp", delete=False) as fh:
        fh.write(doc.content.encode("utf-8"))
    return Path(fh.name)


def publish_document(staged: Path, filename: str) -> Path:
    final = staged.parent / filename
    os.replace(staged, final)
    return final


async def tag_exported_orders(orders: Sequence[Any], tag_order: TagOrder) -> Tuple[List[str], List[str]]:
    """Tag every order with a known id. Failures are per order and never raised."""
    tagged: List[str] = []
    failed: List[str] = []
    for order in orders:
        if not isinstance(order, Mapping) or not order.get("id"):
            continue
        oid = str(order["id"])
        try:
            await tag_order(oid)
            tagged.append(oid)
        except DownstreamTaggingError as e:
            logger.warning("tagging skipped for %s: %s", oid, e.detail)
            failed.append(oid)
        except Exception:
            # Tagging is best-effort; the export is already written and recorded.
            logger.exception("tagging failed for %s", oid)
            failed.append(oid)
    return tagged, failed


async def run_export(
    orders: Any,
    filters: Any,
    *,
    config: ExportConfig,
    session: AsyncSession,
    tag_order: Optional[TagOrder] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    now = now or datetime.now()
    doc = build_export(
        orders,
        customer_code=config.customer_code,
        marketplaces=config.marketplaces,
        now=now,
    )

    staged = stage_document(doc, config.export_dir)
    location = config.file_location(doc.filename)
    try:
        await record_export(
            session,
            filename=doc.filename,
            filters=filters,
            order_count=doc.order_count,
            file_path=location,
            exported_at=now.astimezone(timezone.utc),
        )
    except Exception:
        # No history row means no export; an earlier file with the same name stays.
        logger.exception("export history write failed; discarding %s", staged)
        staged.unlink(missing_ok=True)
        raise
    publish_document(staged, doc.filename)

    tagged: List[str] = []
    failures: List[str] = []
    if tag_order is not None:
        tagged, failures = await tag_exported_orders(orders, tag_order)

    result = ExportResult(
        filename=doc.filename,
        file_path=location,
        download_path=f"/exports/{doc.filename}",
        row_count=doc.row_count,
        order_count=doc.order_count,
        skipped=[w.order_ref for w in doc.skipped],
        tagged=tagged,
        tag_failures=failures,
    )
    _log_event({
        "event": "export.completed",
        "filename": result.filename,
        "rows": result.row_count,
        "orders": result.order_count,
        "skipped": len(result.skipped),
        "tagged": len(tagged),
        "tag_failures": len(failures),
    })
    return result
