from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user_id
from marketplace.models.schemas import (
    Envelope, Order, OrderCreate, OrderCreated, OrderDetail, OrderSummary, OrderUpdate,
)
from marketplace.services.order_service import OrderService

router = APIRouter()


@router.post("", response_model=Envelope[OrderCreated], status_code=201)
def create_order(
    order_data: OrderCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create an order from the caller's cart and reserve its stock"""
    created = OrderService(db).create_order(user_id, order_data.address_id, order_data.shipping_fee)
    return Envelope(message="Order created successfully", data=created)


@router.get("", response_model=Envelope[List[OrderSummary]])
def get_orders(
    status: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get the caller's orders, newest first"""
    orders = OrderService(db).list_orders(user_id, status)
    return Envelope(data=orders)


@router.get("/{order_id}", response_model=Envelope[OrderDetail])
def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get a specific order with its lines"""
    return Envelope(data=OrderService(db).get_order_detail(user_id, order_id))


@router.put("/{order_id}", response_model=Envelope[Order])
def update_order(
    order_id: int,
    update: OrderUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Override status fields, used by operators and tests"""
    order = OrderService(db).update_order_status(
        order_id,
        status=update.status.value if update.status else None,
        payment_status=update.payment_status.value if update.payment_status else None,
    )
    return Envelope(message="Order updated", data=Order.model_validate(order))


@router.post("/{order_id}/cancel", response_model=Envelope)
def cancel_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    OrderService(db).cancel_order(user_id, order_id)
    return Envelope(message="Order cancelled successfully")
