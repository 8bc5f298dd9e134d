import csv
import io
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from order_export.csv_document import BOM
from order_export.errors import (
    DownstreamTaggingError,
    EmptyResultError,
    InvalidInputError,
    MalformedLineItemsWarning,
    NoInputError,
)
from order_export.exporter import build_export, run_export
from order_export.rows import CSV_HEADERS
from order_export.store import list_export_history

NOW = datetime(2025, 10, 19, 14, 5)


def _parse(content):
    assert content.startswith(BOM)
    return list(csv.reader(io.StringIO(content[len(BOM):], newline="")))


# ---------- build_export ----------
def test_row_count_matches_line_items(storefront_order, marketplace_order):
    storefront_order["lineItems"].append({"sku": "TAPE-50", "quantity": 1, "properties": {}})
    doc = build_export([storefront_order, marketplace_order], customer_code="C1", now=NOW)
    assert doc.row_count == 3
    assert doc.order_count == 2
    assert doc.filename == "orders_20251019_1405.csv"
    rows = _parse(doc.content)
    assert rows[0] == CSV_HEADERS
    assert len(rows) == 4
    assert all(len(r) == 27 for r in rows)


def test_marketplace_row_contents(marketplace_order):
    doc = build_export([marketplace_order], now=NOW)
    record = dict(zip(CSV_HEADERS, _parse(doc.content)[1]))
    assert record["LINE 1 TEXT"] == "John"
    assert record["FOREGROUND (TEXT) COLOUR"] == "Navy"
    assert record["LINE 1 STYLE CODE"] == "Script"
    assert record["BACKGROUND (TAPE) COLOUR"] == "Red"
    assert record["MOTIF CODE"] == "M12"
    assert record["CUSTOMER ORDER REF"] == "#2002"


def test_fields_with_commas_survive(storefront_order):
    storefront_order["lineItems"][0]["properties"]["Text Line 1"] = 'He said "hi", then left'
    doc = build_export([storefront_order], now=NOW)
    assert '"He said ""hi"", then left"' in doc.content
    record = dict(zip(CSV_HEADERS, _parse(doc.content)[1]))
    assert record["LINE 1 TEXT"] == 'He said "hi", then left'
    assert record["MOTIF CODE"] == "ABC"


@pytest.mark.parametrize("orders", [None, "orders", {"id": 1}])
def test_non_list_input_is_invalid(orders):
    with pytest.raises(InvalidInputError):
        build_export(orders)


def test_empty_list_is_invalid():
    with pytest.raises(InvalidInputError) as exc:
        build_export([])
    assert isinstance(exc.value, NoInputError)


def test_orders_without_line_items_are_skipped(storefront_order):
    amazon_empty = {"id": "9", "orderNumber": "#9", "channels": "Amazon", "lineItems": []}
    amazon_absent = {"id": "10", "orderNumber": "#10", "channels": "Amazon"}
    doc = build_export([amazon_empty, storefront_order, amazon_absent], now=NOW)
    assert doc.row_count == 1
    assert [w.order_ref for w in doc.skipped] == ["#9", "#10"]
    assert all(isinstance(w, MalformedLineItemsWarning) for w in doc.skipped)


def test_all_empty_line_items_is_empty_result():
    orders = [{"id": "1", "lineItems": []}, {"id": "2", "channels": "Amazon", "lineItems": []}]
    with pytest.raises(EmptyResultError):
        build_export(orders)


def test_same_input_same_bytes(storefront_order, marketplace_order):
    a = build_export([storefront_order, marketplace_order], now=NOW)
    b = build_export([storefront_order, marketplace_order], now=NOW)
    assert a.content.encode("utf-8") == b.content.encode("utf-8")


# ---------- run_export ----------
@pytest.mark.asyncio
async def test_run_export_writes_records_and_tags(db_session, export_config, storefront_order, marketplace_order):
    tagger = AsyncMock(return_value={})
    result = await run_export(
        [storefront_order, marketplace_order],
        {"exportOption": "selected"},
        config=export_config,
        session=db_session,
        tag_order=tagger,
        now=NOW,
    )

    path = Path(export_config.export_dir) / result.filename
    assert path.read_bytes().startswith(BOM.encode("utf-8"))
    assert result.file_path == "/exports/orders_20251019_1405.csv"
    assert result.row_count == 2
    assert result.tagged == ["gid://shopify/Order/1001", "gid://shopify/Order/2002"]
    assert result.tag_failures == []
    assert tagger.await_count == 2

    history = await list_export_history(db_session)
    assert len(history) == 1
    assert history[0].filename == result.filename
    assert history[0].order_count == 2
    assert history[0].filters == {"exportOption": "selected"}


@pytest.mark.asyncio
async def test_tagging_failure_is_not_fatal(db_session, export_config, storefront_order, marketplace_order):
    async def tagger(order_id):
        if order_id.endswith("1001"):
            raise DownstreamTaggingError(order_id, "userErrors")
        return {}

    result = await run_export(
        [storefront_order, marketplace_order], None, config=export_config, session=db_session, tag_order=tagger, now=NOW
    )
    assert result.tagged == ["gid://shopify/Order/2002"]
    assert result.tag_failures == ["gid://shopify/Order/1001"]
    assert len(await list_export_history(db_session)) == 1


@pytest.mark.asyncio
async def test_unexpected_tagging_error_is_not_fatal(db_session, export_config, storefront_order):
    tagger = AsyncMock(side_effect=RuntimeError("boom"))
    result = await run_export([storefront_order], None, config=export_config, session=db_session, tag_order=tagger)
    assert result.tag_failures == ["gid://shopify/Order/1001"]


@pytest.mark.asyncio
async def test_history_failure_removes_file(db_session, export_config, storefront_order, monkeypatch):
    monkeypatch.setattr(
        "order_export.exporter.record_export",
        AsyncMock(side_effect=SQLAlchemyError("disk full")),
    )
    with pytest.raises(SQLAlchemyError):
        await run_export([storefront_order], None, config=export_config, session=db_session, now=NOW)
    assert list(Path(export_config.export_dir).iterdir()) == []


@pytest.mark.asyncio
async def test_failed_export_keeps_earlier_file_from_same_minute(
    db_session, export_config, storefront_order, marketplace_order, monkeypatch
):
    first = await run_export([storefront_order], None, config=export_config, session=db_session, now=NOW)
    path = Path(export_config.export_dir) / first.filename
    kept = path.read_bytes()

    monkeypatch.setattr(
        "order_export.exporter.record_export",
        AsyncMock(side_effect=SQLAlchemyError("disk full")),
    )
    with pytest.raises(SQLAlchemyError):
        await run_export([marketplace_order], None, config=export_config, session=db_session, now=NOW)

    assert path.read_bytes() == kept
    assert [p.name for p in Path(export_config.export_dir).iterdir()] == [first.filename]
    assert len(await list_export_history(db_session)) == 1


@pytest.mark.asyncio
async def test_history_timestamp_matches_filename(db_session, export_config, storefront_order):
    now = datetime(2025, 10, 19, 14, 5, tzinfo=timezone.utc)
    result = await run_export([storefront_order], None, config=export_config, session=db_session, now=now)
    row = (await list_export_history(db_session))[0]
    assert row.exported_at.replace(tzinfo=None) == datetime(2025, 10, 19, 14, 5)
    assert result.filename == f"orders_{now.astimezone().strftime('%Y%m%d_%H%M')}.csv"


@pytest.mark.asyncio
async def test_empty_result_writes_nothing(db_session, export_config):
    with pytest.raises(EmptyResultError):
        await run_export([{"id": "1", "lineItems": []}], None, config=export_config, session=db_session)
    assert not Path(export_config.export_dir).exists()
    assert await list_export_history(db_session) == []
