from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user_id
from marketplace.models.schemas import CartItemCreate, CartItemUpdate, CartView, Envelope
from marketplace.services.cart_service import CartService

router = APIRouter()


@router.get("", response_model=Envelope[CartView])
def get_cart(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Get the caller's cart with live prices and stock"""
    return Envelope(data=CartService(db).read_cart(user_id))


@router.post("/items", response_model=Envelope)
def add_cart_item(
    item: CartItemCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Add a product, merging with an existing line"""
    CartService(db).add_item(user_id, item.product_id, item.quantity)
    return Envelope(message="Item added to cart")


@router.put("/items/{item_id}", response_model=Envelope)
def update_cart_item(
    item_id: int,
    item: CartItemUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    CartService(db).update_item_quantity(user_id, item_id, item.quantity)
    return Envelope(message="Cart updated")


@router.delete("/items/{item_id}", response_model=Envelope)
def remove_cart_item(
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    CartService(db).remove_item(user_id, item_id)
    return Envelope(message="Item removed from cart")


@router.delete("", response_model=Envelope)
def clear_cart(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    CartService(db).clear_cart(user_id)
    return Envelope(message="Cart cleared")
