from __future__ import annotations

from datetime import datetime, date, timezone

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.app.db.base import Base, BigIntPK
from stockledger.app.db.models.core_types import Role, MovementType, POStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- AUTH ----------
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# ---------- MASTER DATA ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Article(Base):
    __tablename__ = "articles"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"))
    expiry_date: Mapped[date | None] = mapped_column(Date)
    # soft delete : jamais supprimé physiquement une fois référencé
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier | None] = relationship()
    stock: Mapped["StockLevel | None"] = relationship(back_populates="article", uselist=False)


# ---------- INVENTORY ----------
class StockLevel(Base):
    __tablename__ = "stock_levels"
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), primary_key=True)

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # NULL = seuil non défini (distinct de 0)
    min_stock: Mapped[int | None] = mapped_column(Integer)
    max_stock: Mapped[int | None] = mapped_column(Integer)
    location: Mapped[str | None] = mapped_column(String(100))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    article: Mapped[Article] = relationship(back_populates="stock")

    __table_args__ = (
        CheckConstraint("min_stock IS NULL OR min_stock >= 0", name="ck_stock_min_nonneg"),
        CheckConstraint("max_stock IS NULL OR max_stock >= 0", name="ck_stock_max_nonneg"),
    )


class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    article_id: Mapped[int] = mapped_column(
        ForeignKey("articles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    # entrada/salida : delta positif ; ajuste : nouvelle valeur absolue
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    article: Mapped[Article] = relationship()
    user: Mapped[User] = relationship()

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_stock_movement_qty_nonneg"),
        Index("ix_stock_movements_article_time", "article_id", "happened_at"),
    )


# ---------- PROCUREMENT ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[POStatus] = mapped_column(
        Enum(POStatus, name="po_status"),
        default=POStatus.pendiente,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    supplier: Mapped[Supplier] = relationship()
    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.article_id",
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    order_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id", ondelete="CASCADE"), primary_key=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")
    article: Mapped[Article] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_po_line_qty_pos"),
    )
