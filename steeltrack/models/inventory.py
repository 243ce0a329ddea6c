"""
SteelTrack Inventory Models
SQLAlchemy models for stock lots, their dimensions and sales

Sensitive columns hold ciphertext, so they are declared as Text whatever
their logical type. No CHECK constraints are declared: encrypted values
would fail any numeric check.
"""
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from steeltrack.core.database import Base


class AccessCredential(Base):
    """Hashed application access code"""
    __tablename__ = "credentials"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    code_hash = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<AccessCredential(id={self.id})>"


class StockLot(Base):
    """
    Stock Lot

    One purchased coil or bundle entry with a total sellable weight.
    Serial number, type, weight, lot code, customer and the descriptor
    fields are stored encrypted.
    """
    __tablename__ = "stock_lots"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    entry_date = Column(Date, nullable=False, doc="Date the lot entered stock")
    serial_number = Column(Text, nullable=False, doc="Serial number (S.No), encrypted")
    steel_type = Column("type", Text, nullable=False, doc="Steel type, encrypted")
    weight = Column(Text, nullable=False, doc="Total sellable weight, encrypted")
    lot_code = Column(Text, nullable=False, doc="Supplier lot code, encrypted")
    quality = Column(String(10), nullable=False, doc="Soft, Hard or Semi")
    customer_name = Column(Text, doc="Legacy single-customer field, encrypted")
    completed = Column(Boolean, nullable=False, default=False, server_default="0")
    at_dc = Column(Boolean, nullable=False, default=False, server_default="0",
                   doc="Moved to the distribution center")
    coating = Column(Text, doc="Coating, encrypted")
    specifications = Column(Text, doc="Specifications, encrypted")
    form = Column(Text, doc="Item form, encrypted")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dimensions = relationship(
        "Dimension",
        back_populates="stock_lot",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Dimension.id",
    )
    sales = relationship(
        "Sale",
        back_populates="stock_lot",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Sale.id",
    )

    def __repr__(self):
        return f"<StockLot(id={self.id}, entry_date={self.entry_date})>"


class Dimension(Base):
    """Thickness x width variant available under a stock lot"""
    __tablename__ = "dimensions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    stock_lot_id = Column(
        Integer, ForeignKey("stock_lots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    thickness = Column(Numeric(10, 2), nullable=False)
    width = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    stock_lot = relationship("StockLot", back_populates="dimensions")

    def __repr__(self):
        return f"<Dimension(id={self.id}, thickness={self.thickness}, width={self.width})>"


class Sale(Base):
    """
    Sale

    A partial sale against a stock lot. Customer, quantity and the
    dimensions snapshot are stored encrypted.
    """
    __tablename__ = "sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    stock_lot_id = Column(
        Integer, ForeignKey("stock_lots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_name = Column(Text, nullable=False, doc="Sold to, encrypted")
    quantity_sold = Column(Text, nullable=False, doc="Quantity sold, encrypted")
    form = Column(String(10), doc="Coil or Sheet")
    sale_date = Column(Date, nullable=False)
    dimensions_snapshot = Column(Text, doc="Parent dimensions at time of sale, encrypted JSON list")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stock_lot = relationship("StockLot", back_populates="sales")

    def __repr__(self):
        return f"<Sale(id={self.id}, stock_lot_id={self.stock_lot_id}, sale_date={self.sale_date})>"


class SchemaMigration(Base):
    """Ledger of applied schema migrations"""
    __tablename__ = "schema_migrations"

    version = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    applied_at = Column(DateTime, server_default=func.now())
