from typing import Optional

from fastapi import APIRouter, Depends

from checkout.auth import verify_token
from checkout.database import SessionLocal
from checkout.merchant import refresh_account_status, require_merchant_account, start_onboarding
from checkout.orders import (
    list_orders,
    materialize_order,
    order_payload_for_checkout,
    order_to_dict,
    update_order_status,
)
from checkout.payments import create_split_payment, verify_payment
from checkout.schemas import (
    ConfirmPaymentRequest,
    OnboardingRequest,
    OrderStatusUpdate,
    PaymentIntentRequest,
)
from checkout.sequence import peek_next_order_number

router = APIRouter()


@router.post("/payments/intent")
def create_payment_intent_api(request: PaymentIntentRequest):
    db = SessionLocal()
    try:
        return create_split_payment(
            db,
            request.subtotal,
            request.items,
            request.customer_info,
            idempotency_key=request.idempotency_key,
        )
    finally:
        db.close()


@router.post("/payments/confirm")
def confirm_payment_api(request: ConfirmPaymentRequest):
    db = SessionLocal()
    try:
        account_id = require_merchant_account(db).account_id
        # no transaction held across the Stripe call
        db.rollback()
        verified = verify_payment(request.payment_intent_id, account_id)
        payload = order_payload_for_checkout(request.order, verified)
        result = materialize_order(db, verified.payment_intent_id, payload, verified.currency)
    finally:
        db.close()

    return {
        "order_id": result.order_id,
        "order_number": result.order_number,
        "created": result.created,
    }


@router.post("/merchant/onboarding")
def merchant_onboarding(request: OnboardingRequest, auth=Depends(verify_token)):
    db = SessionLocal()
    try:
        return start_onboarding(db, request.email)
    finally:
        db.close()


@router.get("/merchant/status")
def merchant_status(auth=Depends(verify_token)):
    db = SessionLocal()
    try:
        return refresh_account_status(db)
    finally:
        db.close()


@router.get("/orders")
def orders_list(
    status: Optional[str] = None,
    order_type: Optional[str] = None,
    auth=Depends(verify_token),
):
    db = SessionLocal()
    try:
        return {"orders": [order_to_dict(o) for o in list_orders(db, status, order_type)]}
    finally:
        db.close()


@router.get("/orders/next-number")
def next_number_preview(auth=Depends(verify_token)):
    db = SessionLocal()
    try:
        return {"order_number": peek_next_order_number(db)}
    finally:
        db.close()


@router.patch("/orders/{order_id}/status")
def order_status_update(order_id: str, request: OrderStatusUpdate, auth=Depends(verify_token)):
    db = SessionLocal()
    try:
        return order_to_dict(update_order_status(db, order_id, request.status))
    finally:
        db.close()
