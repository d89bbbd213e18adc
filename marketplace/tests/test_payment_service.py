from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import BUYER_ID, OTHER_BUYER_ID, fill_cart
from marketplace.core.exceptions import (
    AlreadyFailedError, AlreadyPaidError, ForbiddenError, InvalidPaymentStateError, NotFoundError,
)
from marketplace.models.database import Order, Payment
from marketplace.services.order_service import OrderService
from marketplace.services.payment_service import PaymentService


@pytest.fixture
def order_id(test_db, sample_catalog, buyer_address):
    fill_cart(test_db, BUYER_ID, (sample_catalog["drill"], 1))
    return OrderService(test_db).create_order(BUYER_ID, buyer_address.id, Decimal("30000"))["order_id"]


class TestCreatePayment:

    def test_cod_is_paid_immediately(self, test_db, order_id):
        payment, created = PaymentService(test_db).create_payment(BUYER_ID, order_id, "cod")

        assert created is True
        assert payment.status == "completed"
        assert payment.amount == Decimal("130000.00")
        assert payment.currency == "VND"
        assert test_db.get(Order, order_id).payment_status == "paid"

    def test_gateway_method_stays_pending(self, test_db, order_id):
        payment, created = PaymentService(test_db).create_payment(BUYER_ID, order_id, "momo")

        assert created is True
        assert payment.status == "pending"
        assert test_db.get(Order, order_id).payment_status == "unpaid"

    def test_repeated_create_returns_active_payment(self, test_db, order_id):
        service = PaymentService(test_db)
        first, _ = service.create_payment(BUYER_ID, order_id, "bank_transfer")

        second, created = service.create_payment(BUYER_ID, order_id, "zalopay")

        assert created is False
        assert second.id == first.id
        assert second.payment_provider == "bank_transfer"
        assert test_db.query(Payment).count() == 1

    def test_paid_order_is_rejected(self, test_db, order_id):
        service = PaymentService(test_db)
        service.create_payment(BUYER_ID, order_id, "cod")

        with pytest.raises(AlreadyPaidError, match="Order is already paid"):
            service.create_payment(BUYER_ID, order_id, "momo")

    def test_order_of_another_user(self, test_db, order_id):
        with pytest.raises(NotFoundError, match="Order not found"):
            PaymentService(test_db).create_payment(OTHER_BUYER_ID, order_id, "momo")

    def test_new_payment_after_cancel(self, test_db, order_id):
        service = PaymentService(test_db)
        first, _ = service.create_payment(BUYER_ID, order_id, "momo")
        service.cancel_payment(BUYER_ID, first.id)

        second, created = service.create_payment(BUYER_ID, order_id, "bank_transfer")

        assert created is True
        assert second.id != first.id

    def test_database_rejects_second_active_payment(self, test_db, order_id):
        PaymentService(test_db).create_payment(BUYER_ID, order_id, "momo")

        test_db.add(Payment(
            order_id=order_id,
            payment_provider="zalopay",
            amount=Decimal("130000"),
            currency="VND",
            status="processing",
        ))
        with pytest.raises(IntegrityError):
            test_db.commit()
        test_db.rollback()

    def test_concurrent_create_returns_winning_payment(self, test_db, session_factory, order_id, monkeypatch):
        other = session_factory()
        try:
            winner = Payment(
                order_id=order_id,
                payment_provider="momo",
                amount=Decimal("130000"),
                currency="VND",
                status="pending",
            )
            other.add(winner)
            other.commit()
            winner_id = winner.id
        finally:
            other.close()

        # this request checked for an active payment before the other one committed
        real_active = PaymentService._active_payment
        calls = []

        def stale_active(self, order_id):
            calls.append(order_id)
            if len(calls) == 1:
                return None
            return real_active(self, order_id)

        monkeypatch.setattr(PaymentService, "_active_payment", stale_active)

        payment, created = PaymentService(test_db).create_payment(BUYER_ID, order_id, "bank_transfer")

        assert created is False
        assert payment.id == winner_id
        assert payment.payment_provider == "momo"
        assert test_db.query(Payment).count() == 1


class TestProcessPayment:

    def test_process_pending_payment(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "momo")

        processed_payment, processed = service.process_payment(BUYER_ID, payment.id)

        assert processed is True
        assert processed_payment.status == "completed"
        assert processed_payment.provider_transaction_id.startswith("TXN-")
        assert test_db.get(Order, order_id).payment_status == "paid"

    def test_process_keeps_given_transaction_id(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "bank_transfer")

        processed_payment, _ = service.process_payment(BUYER_ID, payment.id, "VCB-20261019-0042")

        assert processed_payment.provider_transaction_id == "VCB-20261019-0042"

    def test_process_completed_payment_is_a_no_op(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "cod")

        same_payment, processed = service.process_payment(BUYER_ID, payment.id, "IGNORED")

        assert processed is False
        assert same_payment.provider_transaction_id is None

    def test_process_failed_payment(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "momo")
        payment.status = "failed"
        test_db.commit()

        with pytest.raises(AlreadyFailedError, match="cannot be processed"):
            service.process_payment(BUYER_ID, payment.id)

    def test_process_payment_of_another_user(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "momo")

        with pytest.raises(ForbiddenError):
            service.process_payment(OTHER_BUYER_ID, payment.id)

        assert test_db.get(Payment, payment.id).status == "pending"

    def test_process_missing_payment(self, test_db):
        with pytest.raises(NotFoundError, match="Payment not found"):
            PaymentService(test_db).process_payment(BUYER_ID, 99999)


class TestCancelAndQuery:

    def test_cancel_pending_payment(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "zalopay")

        cancelled = service.cancel_payment(BUYER_ID, payment.id)

        assert cancelled.status == "cancelled"

    def test_cancel_completed_payment(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "cod")

        with pytest.raises(InvalidPaymentStateError, match="Only pending payments"):
            service.cancel_payment(BUYER_ID, payment.id)

    def test_get_payment_of_another_user(self, test_db, order_id):
        service = PaymentService(test_db)
        payment, _ = service.create_payment(BUYER_ID, order_id, "momo")

        assert service.get_payment(BUYER_ID, payment.id).id == payment.id
        with pytest.raises(ForbiddenError):
            service.get_payment(OTHER_BUYER_ID, payment.id)

    def test_list_order_payments_newest_first(self, test_db, order_id):
        service = PaymentService(test_db)
        first, _ = service.create_payment(BUYER_ID, order_id, "momo")
        service.cancel_payment(BUYER_ID, first.id)
        second, _ = service.create_payment(BUYER_ID, order_id, "bank_transfer")

        payments = service.list_order_payments(BUYER_ID, order_id)

        assert [p.id for p in payments] == [second.id, first.id]

    def test_list_payments_of_another_users_order(self, test_db, order_id):
        with pytest.raises(NotFoundError):
            PaymentService(test_db).list_order_payments(OTHER_BUYER_ID, order_id)
