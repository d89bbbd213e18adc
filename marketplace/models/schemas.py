from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from marketplace.core.config import DEFAULT_SHIPPING_FEE

T = TypeVar("T")


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    shipping = "shipping"
    delivered = "delivered"
    cancelled = "cancelled"


class OrderPaymentStatus(str, Enum):
    unpaid = "unpaid"
    paid = "paid"


class PaymentMethod(str, Enum):
    cod = "cod"
    bank_transfer = "bank_transfer"
    momo = "momo"
    zalopay = "zalopay"


class Envelope(BaseModel, Generic[T]):
    """Response wrapper shared by every endpoint"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


# Cart

class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartLineView(BaseModel):
    id: int
    quantity: int
    added_at: Optional[datetime] = None
    product_id: int
    product_name: str
    price: Decimal
    sale_price: Optional[Decimal] = None
    sku: Optional[str] = None
    image_url: Optional[str] = None
    stock: int
    brand_name: Optional[str] = None


class CartView(BaseModel):
    cart_id: int
    items: List[CartLineView] = []
    subtotal: Decimal
    item_count: int


# Orders

class OrderCreate(BaseModel):
    address_id: int
    shipping_fee: Decimal = Field(default=DEFAULT_SHIPPING_FEE, ge=0)


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[OrderPaymentStatus] = None


class OrderCreated(BaseModel):
    order_id: int
    total_amount: Decimal
    status: str


class OrderSummary(BaseModel):
    id: int
    total_amount: Decimal
    shipping_fee: Decimal
    status: str
    payment_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    item_count: int
    address_line: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None


class Order(BaseModel):
    id: int
    user_id: int
    address_id: Optional[int] = None
    total_amount: Decimal
    shipping_fee: Decimal
    status: str
    payment_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderDetailHeader(Order):
    address_label: Optional[str] = None
    address_line: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    postal_code: Optional[str] = None
    delivery_phone: Optional[str] = None


class OrderLine(BaseModel):
    id: int
    order_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderDetail(BaseModel):
    order: OrderDetailHeader
    items: List[OrderLine] = []


# Payments

class PaymentCreate(BaseModel):
    order_id: int
    payment_method: PaymentMethod


class PaymentProcess(BaseModel):
    provider_transaction_id: Optional[str] = None


class PaymentCreated(BaseModel):
    payment_id: int
    order_id: int
    amount: Decimal
    currency: Optional[str] = None
    status: str
    payment_method: str
    payment_url: Optional[str] = None


class PaymentProcessed(BaseModel):
    payment_id: int
    order_id: Optional[int] = None
    status: str
    transaction_id: Optional[str] = None


class Payment(BaseModel):
    payment_id: int
    order_id: Optional[int] = None
    amount: Decimal
    currency: str
    status: str
    payment_provider: str
    provider_transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentStatus(Payment):
    order_status: Optional[str] = None
    order_payment_status: Optional[str] = None


# Inventory

class InventoryRecord(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    location: Optional[str] = None
    updated_at: Optional[datetime] = None
