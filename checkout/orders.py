import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from checkout.errors import (
    InvalidAmount,
    InvalidArgument,
    InvalidStatusTransition,
    OrderCreationFailed,
    OrderNotFound,
    SequenceUnavailable,
)
from checkout.fees import Totals, from_minor_units, to_decimal
from checkout.models import Order, OrderSource, OrderStatus
from checkout.schemas import CustomerInfo, OrderItem, OrderPayload
from checkout.sequence import fallback_order_number, next_order_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializedOrder:
    order_id: str
    order_number: str
    created: bool


def find_order_by_payment(db, payment_intent_id: str) -> Optional[Order]:
    return db.execute(
        select(Order).where(Order.payment_intent_id == payment_intent_id)
    ).scalar_one_or_none()


def _reconciliation_gap(payment_intent_id: str, reason: str) -> OrderCreationFailed:
    logger.critical(
        "RECONCILIATION REQUIRED: payment %s succeeded but no order was recorded (%s)",
        payment_intent_id,
        reason,
        exc_info=True,
    )
    return OrderCreationFailed(payment_intent_id)


def _item_record(item: OrderItem) -> dict:
    return {
        "name": item.name,
        "price": float(item.price),
        "quantity": item.quantity,
        "variation": item.variation,
    }


def materialize_order(
    db,
    payment_intent_id: str,
    payload: OrderPayload,
    currency: str,
    source: str = OrderSource.CHECKOUT,
) -> MaterializedOrder:
    try:
        existing = find_order_by_payment(db, payment_intent_id)
        if existing is not None:
            logger.info(
                "Order already exists for payment %s: %s", payment_intent_id, existing.order_number
            )
            return MaterializedOrder(existing.id, existing.order_number, created=False)

        try:
            order_number = next_order_number(db)
        except SequenceUnavailable:
            db.rollback()
            order_number = fallback_order_number()
            logger.warning(
                "Using fallback order number %s for payment %s", order_number, payment_intent_id
            )

        customer = payload.customer_info
        order_id = uuid.uuid4().hex
        db.add(
            Order(
                id=order_id,
                order_number=order_number,
                payment_intent_id=payment_intent_id,
                status=OrderStatus.PENDING,
                amount=payload.amount,
                subtotal=payload.subtotal,
                service_fee=payload.service_fee,
                currency=currency,
                customer_info=customer.model_dump(),
                items=[_item_record(item) for item in payload.items],
                order_type=customer.order_type or "pickup",
                source=source,
            )
        )
        db.commit()
    except IntegrityError:
        # Lost the race: the other path committed first
        db.rollback()
        existing = find_order_by_payment(db, payment_intent_id)
        if existing is not None:
            logger.info(
                "Concurrent order creation for payment %s resolved to %s",
                payment_intent_id,
                existing.order_number,
            )
            return MaterializedOrder(existing.id, existing.order_number, created=False)
        raise _reconciliation_gap(payment_intent_id, "integrity error without existing order")
    except SQLAlchemyError as e:
        db.rollback()
        raise _reconciliation_gap(payment_intent_id, str(e)) from e

    logger.info(
        "Order created: %s %s for payment %s (source=%s)",
        order_id,
        order_number,
        payment_intent_id,
        source,
    )
    return MaterializedOrder(order_id, order_number, created=True)


def charged_totals(verified) -> Optional[Totals]:
    """Totals written to metadata at intent creation, with the amount Stripe charged."""
    amount = from_minor_units(verified.amount_minor)
    metadata = verified.metadata
    try:
        subtotal = to_decimal(metadata["subtotal"])
        fee = to_decimal(metadata["serviceFee"]) if metadata.get("serviceFee") else amount - subtotal
    except (KeyError, InvalidAmount):
        return None
    if subtotal + fee != amount:
        logger.warning(
            "Charged amount %s differs from metadata totals %s + %s for payment %s",
            amount,
            subtotal,
            fee,
            verified.payment_intent_id,
        )
    return Totals(subtotal=subtotal, service_fee=fee, total=amount)


def order_payload_for_checkout(payload: OrderPayload, verified) -> OrderPayload:
    """Money fields for a confirmed order, taken from the charge rather than the client."""
    totals = charged_totals(verified)
    if totals is None:
        amount = from_minor_units(verified.amount_minor)
        fee = from_minor_units(verified.application_fee_minor or 0)
        totals = Totals(subtotal=amount - fee, service_fee=fee, total=amount)
    if payload.subtotal != totals.subtotal:
        logger.warning(
            "Client subtotal %s differs from charged subtotal %s for payment %s",
            payload.subtotal,
            totals.subtotal,
            verified.payment_intent_id,
        )
    return payload.model_copy(
        update={
            "subtotal": totals.subtotal,
            "service_fee": totals.service_fee,
            "amount": totals.total,
        }
    )


def reconstruct_order_payload(verified) -> Optional[OrderPayload]:
    """Best-effort order payload rebuilt from PaymentIntent metadata.

    Lossy: item data is limited to what fit in a 500 character metadata
    value. Returns None when the items cannot be recovered.
    """
    metadata = verified.metadata
    raw_items = metadata.get("orderItems")
    if not raw_items or metadata.get("orderItemsTruncated") == "true":
        return None

    try:
        entries = json.loads(raw_items)
        items = [
            OrderItem(name=e["n"], price=e["p"], quantity=e.get("q", 1), variation=e.get("v"))
            for e in entries
        ]
    except (ValueError, TypeError, KeyError, ValidationError) as e:
        logger.error(
            "Could not parse orderItems metadata for payment %s: %s", verified.payment_intent_id, e
        )
        return None

    if not items:
        return None
    totals = charged_totals(verified)
    if totals is None:
        return None

    first_name, _, last_name = metadata.get("customerName", "").partition(" ")
    customer = CustomerInfo(
        first_name=first_name or "Customer",
        last_name=last_name,
        email=metadata.get("customerEmail", ""),
        phone=metadata.get("customerPhone", ""),
        address=metadata.get("deliveryAddress", ""),
        order_type=metadata.get("orderType") or "pickup",
    )
    return OrderPayload(
        subtotal=totals.subtotal,
        service_fee=totals.service_fee,
        amount=totals.total,
        items=items,
        customer_info=customer,
    )


def update_order_status(db, order_id: str, new_status: str) -> Order:
    if new_status not in OrderStatus.ALL:
        raise InvalidArgument(f"Unknown order status: {new_status}", code="invalid_status")

    order = db.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")

    current = order.status
    if current == new_status:
        return order
    if current in OrderStatus.TERMINAL or (
        new_status != OrderStatus.CANCELLED
        and OrderStatus.FLOW.index(new_status) < OrderStatus.FLOW.index(current)
    ):
        raise InvalidStatusTransition(
            f"Cannot move order from {current} to {new_status}",
            code="invalid_transition",
            details={"from": current, "to": new_status},
        )

    order.status = new_status
    db.commit()
    logger.info("Order %s status %s -> %s", order.order_number, current, new_status)
    return order


def list_orders(db, status=None, order_type=None):
    stmt = select(Order).order_by(Order.created_at.desc())
    if status:
        stmt = stmt.where(Order.status == status)
    if order_type:
        stmt = stmt.where(Order.order_type == order_type)
    return db.execute(stmt).scalars().all()


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "payment_intent_id": order.payment_intent_id,
        "status": order.status,
        "amount": float(order.amount),
        "subtotal": float(order.subtotal),
        "service_fee": float(order.service_fee),
        "currency": order.currency,
        "customer_info": order.customer_info,
        "items": order.items,
        "order_type": order.order_type,
        "source": order.source,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
