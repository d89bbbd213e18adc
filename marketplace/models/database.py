from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from marketplace.core.database import Base

MONEY = Numeric(12, 2)

ORDER_STATUSES = ("pending", "confirmed", "shipping", "delivered", "cancelled")
ORDER_PAYMENT_STATUSES = ("unpaid", "paid")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")
ACTIVE_PAYMENT_STATUSES = ("pending", "processing")


def utcnow():
    return datetime.now(timezone.utc)


class Brand(Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)


class Product(Base):
    """Catalog product, read-only for the order core"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(MONEY, nullable=False)
    sale_price = Column(MONEY)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="SET NULL"))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    brand = relationship("Brand")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan")
    inventory = relationship("InventoryRecord", back_populates="product", uselist=False)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    url = Column(Text, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)

    product = relationship("Product", back_populates="images")


class InventoryRecord(Base):
    """Available quantity per product, the single source of truth for stock"""
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"),
        unique=True, index=True, nullable=False,
    )
    quantity = Column(Integer, nullable=False, default=0)
    location = Column(String(255))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="inventory")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    label = Column(String(100))
    address_line = Column(Text)
    city = Column(String(100))
    district = Column(String(100))
    postal_code = Column(String(20))
    phone = Column(String(30))
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Cart(Base):
    """One cart per user, created lazily and never deleted"""
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    lines = relationship("CartLine", back_populates="cart", cascade="all, delete-orphan")


class CartLine(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    added_at = Column(DateTime(timezone=True), default=utcnow)

    cart = relationship("Cart", back_populates="lines")
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )


class Order(Base):
    """Checkout record; only status and payment_status change after creation"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"))
    total_amount = Column(MONEY, nullable=False)
    shipping_fee = Column(MONEY, nullable=False, default=0)
    status = Column(String(50), nullable=False, default="pending", index=True)
    payment_status = Column(String(50), nullable=False, default="unpaid")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    address = relationship("Address")
    lines = relationship("OrderLine", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="order")


class OrderLine(Base):
    """Snapshot of a purchased product, immune to later catalog changes"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)

    order = relationship("Order", back_populates="lines")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), index=True)
    payment_provider = Column(String(100), nullable=False)
    provider_transaction_id = Column(String(255))
    amount = Column(MONEY, nullable=False)
    currency = Column(String(10), nullable=False, default="VND")
    status = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="payments")


# At most one pending/processing payment per order
_active_payment = Payment.status.in_(ACTIVE_PAYMENT_STATUSES)
Index(
    "uq_payments_active_order",
    Payment.order_id,
    unique=True,
    postgresql_where=_active_payment,
    sqlite_where=_active_payment,
)
