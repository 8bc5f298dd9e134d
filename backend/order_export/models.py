from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    Text,
    JSON,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from .db import Base


def _json_type():
    """JSON type compatible with Postgres and SQLite."""
    return JSON().with_variant(JSONB, "postgresql")


class OrderRecord(Base):
    """Local mirror of a Shopify order, upserted from webhooks and polling."""

    __tablename__ = "orders"

    id = Column(String(128), primary_key=True)
    order_number = Column(String(64), nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    refunds = Column(Text, nullable=True)
    customer = Column(String(255), nullable=True)
    total = Column(String(32), nullable=False, default="0.00")
    payment_status = Column(String(64), nullable=True)
    fulfillment_status = Column(String(64), nullable=True)
    channels = Column(String(128), nullable=True)
    items = Column(Integer, nullable=False, default=0)
    tags = Column(_json_type(), nullable=True)
    delivery_method = Column(String(255), nullable=True)
    delivery_status = Column(String(64), nullable=True)
    po_number = Column(String(128), nullable=True)
    customer_code = Column(String(128), nullable=True)
    customer_order_ref = Column(String(128), nullable=True)
    line_items = Column(_json_type(), nullable=True)
    address = Column(_json_type(), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class ExportHistory(Base):
    """One row per successful export. Never updated."""

    __tablename__ = "export_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    exported_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    # "filters" as sent by the admin UI (export option, start/end time)
    filters = Column(_json_type(), nullable=True)
    order_count = Column(Integer, nullable=False, default=0)
    file_path = Column(String(1024), nullable=False)
