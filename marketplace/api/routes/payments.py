from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user_id
from marketplace.models.database import Payment as DBPayment
from marketplace.models.schemas import (
    Envelope, Payment, PaymentCreate, PaymentCreated, PaymentProcess, PaymentProcessed, PaymentStatus,
)
from marketplace.services.payment_service import PaymentService

router = APIRouter()


def _payment_view(payment: DBPayment) -> dict:
    return {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "payment_provider": payment.payment_provider,
        "provider_transaction_id": payment.provider_transaction_id,
        "created_at": payment.created_at,
    }


@router.post("", response_model=Envelope[PaymentCreated], status_code=201)
def create_payment(
    payment_data: PaymentCreate,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create a payment for an order, or return the one already in progress"""
    method = payment_data.payment_method.value
    payment, created = PaymentService(db).create_payment(user_id, payment_data.order_id, method)

    data = {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "payment_method": method,
    }
    if not created:
        response.status_code = 200
        return Envelope(message="Payment already exists", data=data)

    if payment.status == "pending":
        data["payment_url"] = f"/api/payments/{payment.id}/process"
    return Envelope(message="Payment created successfully", data=data)


@router.post("/{payment_id}/process", response_model=Envelope[PaymentProcessed])
def process_payment(
    payment_id: int,
    body: Optional[PaymentProcess] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Mark a payment completed; stands in for the gateway callback"""
    transaction_id = body.provider_transaction_id if body else None
    payment, processed = PaymentService(db).process_payment(user_id, payment_id, transaction_id)
    if not processed:
        return Envelope(
            message="Payment already completed",
            data={"payment_id": payment.id, "status": "completed"},
        )

    return Envelope(
        message="Payment processed successfully",
        data={
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "status": payment.status,
            "transaction_id": payment.provider_transaction_id,
        },
    )


@router.get("/order/{order_id}", response_model=Envelope[List[Payment]])
def get_order_payments(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    payments = PaymentService(db).list_order_payments(user_id, order_id)
    return Envelope(data=[_payment_view(p) for p in payments])


@router.get("/{payment_id}", response_model=Envelope[PaymentStatus])
def get_payment_status(
    payment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    payment = PaymentService(db).get_payment(user_id, payment_id)
    data = _payment_view(payment)
    data["order_status"] = payment.order.status
    data["order_payment_status"] = payment.order.payment_status
    return Envelope(data=data)


@router.post("/{payment_id}/cancel", response_model=Envelope)
def cancel_payment(
    payment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    PaymentService(db).cancel_payment(user_id, payment_id)
    return Envelope(message="Payment cancelled successfully")
