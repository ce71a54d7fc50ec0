import logging

from checkout.errors import PaymentNotFound
from checkout.merchant import apply_account_update, require_merchant_account
from checkout.models import OrderSource
from checkout.orders import find_order_by_payment, materialize_order, reconstruct_order_payload
from checkout.payments import verify_payment

logger = logging.getLogger(__name__)


def handle_event(db, event) -> None:
    event_type = event["type"]
    obj = event["data"]["object"]
    account = event.get("account")

    if event_type == "payment_intent.succeeded":
        _handle_payment_succeeded(db, obj, account)
    elif event_type == "payment_intent.payment_failed":
        _handle_payment_failed(obj, account)
    elif event_type == "account.updated":
        apply_account_update(db, obj)
    else:
        logger.debug("Ignoring unhandled Stripe event: %s", event_type)


def _handle_payment_succeeded(db, payment_intent, account) -> None:
    payment_intent_id = payment_intent["id"]
    logger.info("Payment succeeded: %s (account=%s)", payment_intent_id, account)

    existing = find_order_by_payment(db, payment_intent_id)
    if existing is not None:
        logger.info(
            "Order already exists for %s, skipping webhook creation: %s",
            payment_intent_id,
            existing.order_number,
        )
        return

    account_id = account or require_merchant_account(db).account_id
    db.rollback()
    try:
        verified = verify_payment(payment_intent_id, account_id)
    except PaymentNotFound:
        # not visible from this account, so redelivery would fail the same way
        logger.warning(
            "Payment %s not found in account %s; acknowledging without an order",
            payment_intent_id,
            account_id,
        )
        return

    payload = reconstruct_order_payload(verified)
    if payload is None:
        logger.warning(
            "Order items missing from metadata for %s; waiting for the confirm call",
            payment_intent_id,
        )
        return

    result = materialize_order(
        db, payment_intent_id, payload, verified.currency, source=OrderSource.WEBHOOK_METADATA
    )
    if result.created:
        logger.info(
            "Order created from webhook (fallback): %s %s", result.order_id, result.order_number
        )


def _handle_payment_failed(payment_intent, account) -> None:
    last_error = payment_intent.get("last_payment_error") or {}
    logger.info(
        "Payment failed: %s (account=%s) reason=%s",
        payment_intent.get("id"),
        account,
        last_error.get("message", "unknown"),
    )
