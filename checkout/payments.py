import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from checkout import config, stripe_service
from checkout.errors import (
    InvalidArgument,
    PaymentInitiationFailed,
    PaymentNotFound,
    PaymentNotSucceeded,
    PaymentVerificationFailed,
    ProcessorError,
)
from checkout.fees import compute_totals, to_minor_units
from checkout.merchant import require_merchant_account
from checkout.schemas import CustomerInfo, OrderItem

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500


@dataclass(frozen=True)
class VerifiedPayment:
    payment_intent_id: str
    status: str
    amount_minor: int
    currency: str
    application_fee_minor: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def validate_checkout(items: List[OrderItem], customer_info: CustomerInfo) -> None:
    if not items:
        raise InvalidArgument("Order must contain at least one item", code="missing_items")
    for item in items:
        if not item.name:
            raise InvalidArgument("Every item needs a name", code="invalid_item")
        if item.quantity < 1:
            raise InvalidArgument(f"Invalid quantity for {item.name}", code="invalid_item")
        if not item.price.is_finite() or item.price <= 0:
            raise InvalidArgument(f"Invalid price for {item.name}", code="invalid_item")
    if not customer_info.first_name or not customer_info.email:
        raise InvalidArgument("Customer name and email are required", code="missing_customer")


def encode_items(items: List[OrderItem]) -> str:
    """Compact JSON item list used for webhook-side order reconstruction."""
    compact = []
    for item in items:
        entry = {"n": item.name, "p": str(item.price), "q": item.quantity}
        if item.variation:
            entry["v"] = item.variation
        compact.append(entry)
    return json.dumps(compact, separators=(",", ":"))


def build_metadata(totals, items: List[OrderItem], customer_info: CustomerInfo) -> Dict[str, str]:
    metadata = {
        "subtotal": str(totals.subtotal),
        "serviceFee": str(totals.service_fee),
        "total": str(totals.total),
        "customerName": f"{customer_info.first_name} {customer_info.last_name}".strip(),
        "customerEmail": customer_info.email,
        "customerPhone": customer_info.phone,
        "deliveryAddress": customer_info.address,
        "orderType": customer_info.order_type or "pickup",
    }
    for key in ("customerName", "customerEmail", "customerPhone", "deliveryAddress"):
        metadata[key] = metadata[key][:METADATA_VALUE_LIMIT]

    encoded = encode_items(items)
    if len(encoded) <= METADATA_VALUE_LIMIT:
        metadata["orderItems"] = encoded
    else:
        # Too large for a metadata value; the order can only come from the confirm call
        metadata["orderItemsTruncated"] = "true"
    return metadata


def create_split_payment(
    db,
    subtotal,
    items: List[OrderItem],
    customer_info: CustomerInfo,
    idempotency_key: Optional[str] = None,
) -> dict:
    totals = compute_totals(subtotal)
    validate_checkout(items, customer_info)
    account_id = require_merchant_account(db).account_id
    # no transaction held across the Stripe call
    db.rollback()

    try:
        intent = stripe_service.create_payment_intent(
            amount=to_minor_units(totals.total),
            currency=config.CURRENCY,
            application_fee_amount=to_minor_units(totals.service_fee),
            account_id=account_id,
            metadata=build_metadata(totals, items, customer_info),
            idempotency_key=idempotency_key,
        )
    except ProcessorError as e:
        logger.error(
            "Payment intent creation failed: code=%s retryable=%s account=%s",
            e.code,
            e.retryable,
            account_id,
        )
        raise PaymentInitiationFailed(
            f"Failed to create payment intent: {e.message}", code=e.code, retryable=e.retryable
        ) from e

    logger.info(
        "Payment intent created: %s total=%s fee=%s account=%s",
        intent.id,
        totals.total,
        totals.service_fee,
        account_id,
    )
    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.id,
        "account_id": account_id,
        "subtotal": float(totals.subtotal),
        "service_fee": float(totals.service_fee),
        "total": float(totals.total),
    }


def verify_payment(payment_intent_id: str, account_id: str) -> VerifiedPayment:
    try:
        intent = stripe_service.retrieve_payment_intent(payment_intent_id, account_id)
    except ProcessorError as e:
        if e.code == stripe_service.RESOURCE_MISSING:
            raise PaymentNotFound(
                f"Payment {payment_intent_id} not found for account {account_id}",
                code=e.code,
                details={"payment_intent_id": payment_intent_id},
            ) from e
        raise PaymentVerificationFailed(
            f"Failed to verify payment: {e.message}", code=e.code, retryable=e.retryable
        ) from e

    if intent.status != SUCCEEDED:
        logger.info("Payment %s not succeeded yet: %s", payment_intent_id, intent.status)
        raise PaymentNotSucceeded(payment_intent_id, intent.status)

    return VerifiedPayment(
        payment_intent_id=intent.id,
        status=intent.status,
        amount_minor=intent.amount,
        currency=intent.currency,
        application_fee_minor=getattr(intent, "application_fee_amount", None),
        metadata=stripe_service.to_plain(intent.metadata) or {},
    )
