import logging
import time
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.config import PAYMENT_CURRENCY
from marketplace.core.exceptions import (
    AlreadyFailedError, AlreadyPaidError, ForbiddenError, InvalidPaymentStateError, NotFoundError,
)
from marketplace.models.database import ACTIVE_PAYMENT_STATUSES, Order, Payment, utcnow
from marketplace.services.ownership import get_owned_or_404

logger = logging.getLogger(__name__)

# Methods settled on delivery are complete as soon as they are recorded
AUTO_COMPLETE_METHODS = {"cod"}


class PaymentService:
    """
    Payment records for orders. Gateways are not called: non-COD payments
    stay pending until ``process_payment`` reports them completed.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active_payment(self, order_id: int) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.order_id == order_id, Payment.status.in_(ACTIVE_PAYMENT_STATUSES))
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .first()
        )

    def _payment_for_user(self, payment_id: int, user_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if payment is None or payment.order is None:
            raise NotFoundError("Payment not found")
        if payment.order.user_id != user_id:
            raise ForbiddenError()
        return payment

    def create_payment(self, user_id: int, order_id: int, method: str) -> Tuple[Payment, bool]:
        """
        Returns ``(payment, created)``. While the order has an active payment
        that payment is returned as is and ``created`` is False.
        """
        order = get_owned_or_404(self.db, Order, order_id, user_id, "Order not found")

        if order.payment_status == "paid":
            raise AlreadyPaidError()

        existing = self._active_payment(order.id)
        if existing:
            logger.info(f"Order {order.id} already has active payment {existing.id}")
            return existing, False

        auto_complete = method in AUTO_COMPLETE_METHODS
        payment = Payment(
            order_id=order.id,
            payment_provider=method,
            amount=order.total_amount,
            currency=PAYMENT_CURRENCY,
            status="completed" if auto_complete else "pending",
        )
        self.db.add(payment)
        if auto_complete:
            order.payment_status = "paid"
        order.updated_at = utcnow()

        try:
            self.db.commit()
        except IntegrityError:
            # lost the race against a concurrent request for the same order
            self.db.rollback()
            existing = self._active_payment(order_id)
            if existing is None:
                raise
            return existing, False

        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} ({method}) created for order {order_id}: {payment.status}")
        return payment, True

    def process_payment(
        self, user_id: int, payment_id: int, provider_transaction_id: str = None
    ) -> Tuple[Payment, bool]:
        """Returns ``(payment, processed)``; an already completed payment is left untouched"""
        payment = self._payment_for_user(payment_id, user_id)

        if payment.status == "completed":
            return payment, False
        if payment.status == "failed":
            raise AlreadyFailedError()

        payment.status = "completed"
        payment.provider_transaction_id = provider_transaction_id or f"TXN-{int(time.time() * 1000)}"
        payment.order.payment_status = "paid"
        payment.order.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(payment)

        logger.info(f"Payment {payment_id} completed, transaction {payment.provider_transaction_id}")
        return payment, True

    def get_payment(self, user_id: int, payment_id: int) -> Payment:
        return self._payment_for_user(payment_id, user_id)

    def list_order_payments(self, user_id: int, order_id: int) -> List[Payment]:
        order = get_owned_or_404(self.db, Order, order_id, user_id, "Order not found")
        return (
            self.db.query(Payment)
            .filter(Payment.order_id == order.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    def cancel_payment(self, user_id: int, payment_id: int) -> Payment:
        payment = self._payment_for_user(payment_id, user_id)

        if payment.status != "pending":
            raise InvalidPaymentStateError("Only pending payments can be cancelled")

        payment.status = "cancelled"
        self.db.commit()
        logger.info(f"Payment {payment_id} cancelled")
        return payment
