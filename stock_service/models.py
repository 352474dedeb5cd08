from sqlalchemy import Column, Integer, String, Float, Text, TIMESTAMP, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from .database import Base

DIRECTION_IN = "in"
DIRECTION_OUT = "out"
DIRECTIONS = (DIRECTION_IN, DIRECTION_OUT)

# Range of the Integer columns (32-bit on PostgreSQL)
INT_MIN = -2**31
INT_MAX = 2**31 - 1


class User(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True} # Load server-side timestamps on flush

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(150), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False) # Never the raw password
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"


class Item(Base):
    __tablename__ = "items"
    __mapper_args__ = {"eager_defaults": True} # Load server-side timestamps on flush

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=False, index=True) # Unique across every owner
    category = Column(String(100), nullable=False, default="")
    quantity = Column(Integer, nullable=False, default=0) # No floor, may go negative
    min_stock = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False, default=0.0)
    supplier = Column(String(255), nullable=False, default="")
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )
    deleted_at = Column(TIMESTAMP(timezone=True), nullable=True) # Tombstone, rows are never removed

    __table_args__ = (
        CheckConstraint('price >= 0', name='items_price_non_negative'),
    )

    def __repr__(self):
        return f"<Item(id={self.id}, sku='{self.sku}', quantity={self.quantity})>"


class StockTransaction(Base):
    """Append-only ledger row. Never updated or deleted once written."""
    __tablename__ = "transactions"
    __mapper_args__ = {"eager_defaults": True} # Load server-side timestamps on flush

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    type = Column(String(3), nullable=False)
    quantity = Column(Integer, nullable=False)
    notes = Column(Text, nullable=False, default="")
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("type IN ('in', 'out')", name='transactions_type_valid'),
        CheckConstraint('quantity > 0', name='transactions_quantity_positive'),
    )

    def __repr__(self):
        return f"<StockTransaction(id={self.id}, item_id={self.item_id}, type='{self.type}', quantity={self.quantity})>"
