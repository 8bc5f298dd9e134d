"""Shared fixtures: sample orders, an in-memory database, and an API client.

The environment is pinned before any ``order_export`` module is imported
because ``db`` and ``main`` read it at import time.
"""
import asyncio
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("EXPORT_DIR", tempfile.mkdtemp(prefix="order-exports-"))

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from order_export.config import ExportConfig
from order_export.db import get_session, init_db


@pytest.fixture(autouse=True)
def _no_shopify_env(monkeypatch):
    """Tests never talk to a real store unless they opt in."""
    for name in ("SHOPIFY_STORE_DOMAIN", "SHOPIFY_ACCESS_TOKEN", "SHOPIFY_API_SECRET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def storefront_order():
    return {
        "id": "gid://shopify/Order/1001",
        "orderNumber": "#1001",
        "name": "#1001",
        "customer": "Jane Doe",
        "channels": "Online Store",
        "deliveryMethod": "Royal Mail 1st Class",
        "customerOrderRef": "1001",
        "address": {
            "address1": "1 High Street",
            "address2": "Flat 2",
            "address3": "Leeds",
            "address4": "West Yorkshire",
            "country": "United Kingdom",
            "zip": "LS1 1AA",
        },
        "lineItems": [
            {
                "sku": "TAPE-25",
                "quantity": 2,
                "properties": {
                    "Background Colour": "White",
                    "Text Colour": "Navy",
                    "Font Style": "F1",
                    "Text Line 1": "JANE DOE",
                    "Line 2 Text": "Class 3B",
                    "Motifs 1": "ABC",
                },
            },
        ],
    }


@pytest.fixture
def marketplace_order():
    return {
        "id": "gid://shopify/Order/2002",
        "orderNumber": "#2002",
        "name": "#2002",
        "customer": "John Smith",
        "channels": "Amazon",
        "deliveryMethod": "Standard",
        "address": {"address1": "9 Low Road", "country": "United Kingdom", "zip": "M1 1AA"},
        "lineItems": [
            {
                "sku": "TAPE-10",
                "quantity": 1,
                "properties": [
                    {"name": "Tape Colour", "value": "optionValue : Red"},
                    {"name": "Line 1 Text", "value": "optionValue : Red\ncolorName : Navy\nfontFamily : Script\ntext : John"},
                    {"name": "Motif", "value": "optionValue : M12 - Football"},
                ],
            },
        ],
    }


@pytest.fixture
def export_config(tmp_path):
    return ExportConfig(customer_code="CUST01", export_dir=str(tmp_path / "exports"))


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite://")
    await init_db(engine)
    maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed sessions without pooling, safe to use from TestClient's loop."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def client(session_factory, export_config):
    from order_export.main import app, get_export_config, get_tagger

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_export_config] = lambda: export_config
    app.dependency_overrides[get_tagger] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
