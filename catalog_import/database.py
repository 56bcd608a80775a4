"""
Database Module
SQLAlchemy declarations for the products/variants tables and engine bootstrap.

Tables
------
products  - one row per handle.  ``description`` is always NULL when written
            by the importer.
variants  - one row per (product_id, sku).  ``status`` mirrors the latest
            quantity.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, ForeignKey, Index, Enum,
    create_engine, event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, relationship

from .records import StockStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id          = Column(String(36), primary_key=True)
    handle      = Column(String(255), nullable=False, unique=True)
    name        = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    brand       = Column(String(255), nullable=False, default="")
    created_at  = Column(DateTime(timezone=True), default=_utcnow)
    updated_at  = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    variants = relationship("Variant", back_populates="product")


class Variant(Base):
    __tablename__ = "variants"

    id         = Column(String(36), primary_key=True)
    sku        = Column(String(255), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    quantity   = Column(Integer, nullable=False, default=0)
    price      = Column(Numeric(10, 2), nullable=False)
    barcode    = Column(String(255), nullable=True)
    status     = Column(
        Enum(
            StockStatus,
            name="variant_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        Index("ix_variants_product_id_sku", "product_id", "sku", unique=True),
    )


products_table = Product.__table__
variants_table = Variant.__table__


def create_db_engine(db_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get foreign key enforcement."""
    engine = create_engine(db_url, echo=echo, future=True)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _rec):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return engine


def init_db(engine: Engine) -> None:
    """Emit CREATE TABLE for any missing catalog table."""
    Base.metadata.create_all(engine)
