import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import InsufficientStockError, NotFoundError
from marketplace.models.database import Cart, CartLine, utcnow
from marketplace.services.catalog import CatalogReader
from marketplace.services.money import to_money

logger = logging.getLogger(__name__)


class CartService:
    """
    One cart per user. Lines are validated against live stock when they are
    added or changed; the final check happens again at checkout.
    """

    def __init__(self, db: Session, catalog: CatalogReader = None):
        self.db = db
        self.catalog = catalog or CatalogReader(db)

    def _find_cart(self, user_id: int) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_or_create_cart(self, user_id: int) -> Cart:
        cart = self._find_cart(user_id)
        if cart:
            return cart

        cart = Cart(user_id=user_id)
        self.db.add(cart)
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent request created it first
            self.db.rollback()
            return self.db.query(Cart).filter(Cart.user_id == user_id).one()

        self.db.refresh(cart)
        logger.info(f"Created cart {cart.id} for user {user_id}")
        return cart

    def read_cart(self, user_id: int) -> dict:
        cart = self.get_or_create_cart(user_id)
        lines = (
            self.db.query(CartLine)
            .filter(CartLine.cart_id == cart.id)
            .order_by(CartLine.added_at.desc(), CartLine.id.desc())
            .all()
        )
        products = self.catalog.get_products(line.product_id for line in lines)

        items = []
        subtotal = Decimal("0")
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                continue
            subtotal += product.effective_price * line.quantity
            items.append({
                "id": line.id,
                "quantity": line.quantity,
                "added_at": line.added_at,
                "product_id": product.id,
                "product_name": product.name,
                "price": product.price,
                "sale_price": product.sale_price,
                "sku": product.sku,
                "image_url": product.image_url,
                "stock": product.stock,
                "brand_name": product.brand_name,
            })

        return {
            "cart_id": cart.id,
            "items": items,
            "subtotal": to_money(subtotal),
            "item_count": len(items),
        }

    def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> CartLine:
        product = self.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found or inactive")

        if product.stock < quantity:
            raise InsufficientStockError(
                f"Only {product.stock} items in stock",
                product_id=product_id,
                available=product.stock,
            )

        cart = self.get_or_create_cart(user_id)
        line = self.db.query(CartLine).filter(
            CartLine.cart_id == cart.id,
            CartLine.product_id == product_id,
        ).first()

        if line:
            new_quantity = line.quantity + quantity
            if product.stock < new_quantity:
                raise InsufficientStockError(
                    f"Only {product.stock} items in stock",
                    product_id=product_id,
                    available=product.stock,
                )
            line.quantity = new_quantity
        else:
            line = CartLine(cart_id=cart.id, product_id=product_id, quantity=quantity)
            self.db.add(line)

        cart.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(line)
        logger.info(f"Cart {cart.id}: product {product_id} now x{line.quantity}")
        return line

    def _owned_line(self, user_id: int, line_id: int) -> CartLine:
        line = (
            self.db.query(CartLine)
            .join(Cart, Cart.id == CartLine.cart_id)
            .filter(CartLine.id == line_id, Cart.user_id == user_id)
            .first()
        )
        if line is None:
            raise NotFoundError("Cart item not found")
        return line

    def update_item_quantity(self, user_id: int, line_id: int, quantity: int) -> CartLine:
        line = self._owned_line(user_id, line_id)

        product = self.catalog.get_product(line.product_id, active_only=False)
        stock = product.stock if product else 0
        if stock < quantity:
            raise InsufficientStockError(
                f"Only {stock} items in stock",
                product_id=line.product_id,
                available=stock,
            )

        line.quantity = quantity
        self.db.commit()
        self.db.refresh(line)
        return line

    def remove_item(self, user_id: int, line_id: int) -> None:
        line = self._owned_line(user_id, line_id)
        self.db.delete(line)
        self.db.commit()
        logger.info(f"Removed cart item {line_id} for user {user_id}")

    def clear_cart(self, user_id: int) -> None:
        cart = self._find_cart(user_id)
        if cart is None:
            return
        self.db.query(CartLine).filter(CartLine.cart_id == cart.id).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared cart {cart.id}")
