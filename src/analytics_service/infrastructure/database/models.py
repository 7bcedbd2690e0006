"""SQLAlchemy models for the analytics service.

Catalog and order tables mirror what the POS writes; the service only
reads them. ``customer_analytics`` is owned by the service.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SCHEMA = "analytics"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Catalog
# =============================================================================


class Category(Base):
    """Item category."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = ({"schema": SCHEMA},)


class Item(Base):
    """Sellable catalog item."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(255), ForeignKey(f"{SCHEMA}.categories.id", ondelete="SET NULL")
    )
    price: Mapped[float] = mapped_column(Float, default=0.0)
    description: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_items_category", "category_id"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Orders
# =============================================================================


class Order(Base):
    """A completed POS order."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False, index=True
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.id", lazy="selectin"
    )


class OrderItem(Base):
    """One line of an order.

    ``item_id`` is deliberately not a foreign key: lines outlive deleted
    catalog items.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(255), ForeignKey(f"{SCHEMA}.orders.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    item_name: Mapped[Optional[str]] = mapped_column(String(500))
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
        Index("ix_order_items_item", "item_id"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Customer Analytics
# =============================================================================


class CustomerAnalyticsRecord(Base):
    """Persisted customer summary document.

    ``summary`` is plain JSON rather than JSONB so mapping key order, which
    breaks frequent-item ties, survives a round trip.
    """

    __tablename__ = "customer_analytics"

    customer_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    summary: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = ({"schema": SCHEMA},)
