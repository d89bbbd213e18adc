import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from marketplace.core.exceptions import InsufficientStockError
from marketplace.models.database import InventoryRecord, Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Per-product available quantity.

    Both mutations run on the caller's session and never commit, so they
    take part in whatever transaction the caller has open.
    """

    def __init__(self, db: Session):
        self.db = db

    def available(self, product_id: int) -> int:
        quantity = self.db.query(InventoryRecord.quantity).filter(
            InventoryRecord.product_id == product_id
        ).scalar()
        return quantity or 0

    def lock_records(self, product_ids: Iterable[int]) -> Dict[int, int]:
        """
        Read current quantities with a row lock held until the transaction ends.
        Products without an inventory row map to 0.
        """
        ids = sorted(set(product_ids))
        rows = (
            self.db.query(InventoryRecord)
            .filter(InventoryRecord.product_id.in_(ids))
            .order_by(InventoryRecord.product_id)
            .with_for_update()
            .all()
        )
        quantities = {product_id: 0 for product_id in ids}
        for record in rows:
            quantities[record.product_id] = record.quantity
        return quantities

    def reserve(self, product_id: int, quantity: int, label: str = None) -> None:
        """
        Decrement stock only if it still covers ``quantity``.

        The check and the write are one statement, so two buyers racing for
        the last units cannot both succeed.
        """
        update_count = self.db.execute(
            text("""
                UPDATE inventory
                SET quantity = quantity - :quantity,
                    updated_at = CURRENT_TIMESTAMP
                WHERE product_id = :product_id AND quantity >= :quantity
            """),
            {"quantity": quantity, "product_id": product_id}
        ).rowcount

        if update_count == 0:
            available = self.available(product_id)
            name = label or f"product {product_id}"
            logger.warning(
                f"Reservation of {quantity} x {name} rejected, {available} available"
            )
            raise InsufficientStockError(
                f"Insufficient stock for {name}. Only {available} available.",
                product_id=product_id,
                available=available,
            )

        logger.info(f"Reserved {quantity} x product {product_id}")

    def restore(self, product_id: int, quantity: int) -> None:
        """Put ``quantity`` units back, e.g. when an order is cancelled"""
        update_count = self.db.execute(
            text("""
                UPDATE inventory
                SET quantity = quantity + :quantity,
                    updated_at = CURRENT_TIMESTAMP
                WHERE product_id = :product_id
            """),
            {"quantity": quantity, "product_id": product_id}
        ).rowcount

        if update_count == 0:
            logger.warning(f"No inventory record for product {product_id}, restore of {quantity} skipped")
            return

        logger.info(f"Restored {quantity} x product {product_id}")

    def snapshot(self) -> List[dict]:
        """Current stock of every product, for the read-only inventory endpoints"""
        rows = (
            self.db.query(InventoryRecord, Product.name)
            .join(Product, Product.id == InventoryRecord.product_id)
            .order_by(InventoryRecord.product_id)
            .all()
        )
        return [self._as_dict(record, name) for record, name in rows]

    def get_record(self, product_id: int) -> Optional[dict]:
        row = (
            self.db.query(InventoryRecord, Product.name)
            .join(Product, Product.id == InventoryRecord.product_id)
            .filter(InventoryRecord.product_id == product_id)
            .first()
        )
        if row is None:
            return None
        return self._as_dict(*row)

    @staticmethod
    def _as_dict(record: InventoryRecord, name: str) -> dict:
        return {
            "product_id": record.product_id,
            "product_name": name,
            "quantity": record.quantity,
            "location": record.location,
            "updated_at": record.updated_at,
        }
