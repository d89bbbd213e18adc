import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.core.config import DEFAULT_SHIPPING_FEE
from marketplace.core.exceptions import (
    EmptyCartError, InsufficientStockError, InvalidTransitionError, MarketplaceError,
    NoOpUpdateError, NotFoundError, OrderCancellationFailedError, OrderCreationFailedError,
)
from marketplace.models.database import (
    Address, Cart, CartLine, Order, OrderLine, Product, utcnow,
)
from marketplace.services.catalog import AddressBook, CatalogReader, effective_price
from marketplace.services.inventory_service import InventoryLedger
from marketplace.services.money import to_money
from marketplace.services.ownership import get_owned_or_404

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineSnapshot:
    """What was bought, at which price, frozen at checkout time"""
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class OrderService:
    """
    Turns a cart into an order.

    Creation and cancellation each run in a single transaction: the order,
    its lines, the inventory changes and the cart cleanup are committed
    together or not at all.
    """

    def __init__(self, db: Session):
        self.db = db
        self.inventory = InventoryLedger(db)
        self.catalog = CatalogReader(db)
        self.addresses = AddressBook(db)

    def create_order(self, user_id: int, address_id: int, shipping_fee=None) -> dict:
        shipping_fee = to_money(DEFAULT_SHIPPING_FEE if shipping_fee is None else shipping_fee)

        try:
            if self.addresses.get_for_user(address_id, user_id) is None:
                raise NotFoundError("Address not found")

            cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
            if cart is None:
                raise EmptyCartError()

            snapshots = self._snapshot_cart(cart)
            total_amount = to_money(
                sum((s.total_price for s in snapshots), Decimal("0")) + shipping_fee
            )

            order = Order(
                user_id=user_id,
                address_id=address_id,
                total_amount=total_amount,
                shipping_fee=shipping_fee,
                status="pending",
                payment_status="unpaid",
            )
            self.db.add(order)
            self.db.flush()
            new_order_id = order.id

            for snapshot in snapshots:
                self._insert_line(order, snapshot)
                self.inventory.reserve(snapshot.product_id, snapshot.quantity, label=snapshot.product_name)

            self.db.query(CartLine).filter(CartLine.cart_id == cart.id).delete(synchronize_session=False)
            self.db.commit()

        except MarketplaceError as e:
            self.db.rollback()
            logger.warning(f"Order rejected for user {user_id}: {e.message}")
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating order for user {user_id}: {str(e)}")
            raise OrderCreationFailedError() from e

        logger.info(f"Order {new_order_id} created for user {user_id}, total {total_amount}")
        return {
            "order_id": new_order_id,
            "total_amount": total_amount,
            "status": "pending",
        }

    def _snapshot_cart(self, cart: Cart) -> List[LineSnapshot]:
        """Freeze the active cart lines, checking stock under a row lock"""
        rows = (
            self.db.query(CartLine, Product)
            .join(Product, Product.id == CartLine.product_id)
            .filter(CartLine.cart_id == cart.id, Product.is_active.is_(True))
            .order_by(CartLine.id)
            .all()
        )
        if not rows:
            raise EmptyCartError()

        stock = self.inventory.lock_records(product.id for _, product in rows)

        snapshots = []
        for line, product in rows:
            available = stock[product.id]
            if available < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {product.name}. Only {available} available.",
                    product_id=product.id,
                    available=available,
                )
            snapshots.append(LineSnapshot(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=to_money(effective_price(product.price, product.sale_price)),
            ))
        return snapshots

    def _insert_line(self, order: Order, snapshot: LineSnapshot) -> OrderLine:
        line = OrderLine(
            order_id=order.id,
            product_id=snapshot.product_id,
            product_name=snapshot.product_name,
            quantity=snapshot.quantity,
            unit_price=snapshot.unit_price,
            total_price=snapshot.total_price,
        )
        self.db.add(line)
        self.db.flush()
        return line

    def cancel_order(self, user_id: int, order_id: int) -> None:
        try:
            order = get_owned_or_404(self.db, Order, order_id, user_id, "Order not found", lock=True)

            # flip status first so a concurrent cancel of the same order matches no row
            flipped = self.db.query(Order).filter(
                Order.id == order.id,
                Order.status == "pending",
            ).update(
                {"status": "cancelled", "updated_at": utcnow()},
                synchronize_session=False,
            )
            if flipped == 0:
                raise InvalidTransitionError("Only pending orders can be cancelled")

            lines = self.db.query(OrderLine.product_id, OrderLine.quantity).filter(
                OrderLine.order_id == order.id
            ).all()
            for product_id, quantity in lines:
                self.inventory.restore(product_id, quantity)

            self.db.commit()

        except MarketplaceError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error cancelling order {order_id}: {str(e)}")
            raise OrderCancellationFailedError() from e

        logger.info(f"Order {order_id} cancelled by user {user_id}, {len(lines)} lines restocked")

    def update_order_status(
        self,
        order_id: int,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> Order:
        """Administrative override, no transition rules are applied"""
        if not status and not payment_status:
            raise NoOpUpdateError()

        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")

        if status:
            order.status = status
        if payment_status:
            order.payment_status = payment_status
        order.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order_id} updated: status={order.status}, payment_status={order.payment_status}")
        return order

    def list_orders(self, user_id: int, status: Optional[str] = None) -> List[dict]:
        query = (
            self.db.query(
                Order,
                func.count(OrderLine.id).label("item_count"),
                Address.address_line,
                Address.city,
                Address.district,
            )
            .outerjoin(OrderLine, OrderLine.order_id == Order.id)
            .outerjoin(Address, Address.id == Order.address_id)
            .filter(Order.user_id == user_id)
        )
        if status:
            query = query.filter(Order.status == status)

        rows = (
            query.group_by(Order.id, Address.address_line, Address.city, Address.district)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
        return [
            {
                "id": order.id,
                "total_amount": order.total_amount,
                "shipping_fee": order.shipping_fee,
                "status": order.status,
                "payment_status": order.payment_status,
                "created_at": order.created_at,
                "updated_at": order.updated_at,
                "item_count": item_count,
                "address_line": address_line,
                "city": city,
                "district": district,
            }
            for order, item_count, address_line, city, district in rows
        ]

    def get_order_detail(self, user_id: int, order_id: int) -> dict:
        order = get_owned_or_404(self.db, Order, order_id, user_id, "Order not found")
        address = order.address

        lines = self.db.query(OrderLine).filter(OrderLine.order_id == order.id).order_by(OrderLine.id).all()
        images = self.catalog.primary_image_urls(line.product_id for line in lines)

        header = {
            "id": order.id,
            "user_id": order.user_id,
            "address_id": order.address_id,
            "total_amount": order.total_amount,
            "shipping_fee": order.shipping_fee,
            "status": order.status,
            "payment_status": order.payment_status,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
            "address_label": address.label if address else None,
            "address_line": address.address_line if address else None,
            "city": address.city if address else None,
            "district": address.district if address else None,
            "postal_code": address.postal_code if address else None,
            "delivery_phone": address.phone if address else None,
        }
        items = [
            {
                "id": line.id,
                "order_id": line.order_id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "total_price": line.total_price,
                "image_url": images.get(line.product_id),
            }
            for line in lines
        ]
        return {"order": header, "items": items}
