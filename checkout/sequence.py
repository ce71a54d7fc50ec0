import logging
import time

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from checkout.errors import SequenceUnavailable
from checkout.models import OrderCounter

logger = logging.getLogger(__name__)

ORDERS_KEY = "orders"
counters = OrderCounter.__table__


def format_order_number(value: int) -> str:
    # #001..#999, then natural width: #1000, #1001, ...
    return f"#{value:03d}"


def fallback_order_number() -> str:
    """Degraded-mode number used only when the counter cannot be incremented."""
    return f"#T{int(time.time() * 1000) % 1000000:06d}"


def _increment(db):
    stmt = (
        update(counters)
        .where(counters.c.key == ORDERS_KEY)
        .values(value=counters.c.value + 1)
        .returning(counters.c.value)
    )
    return db.execute(stmt).scalar_one_or_none()


def next_sequence_value(db) -> int:
    """Atomically increment the order counter within the caller's transaction."""
    try:
        value = _increment(db)
        if value is not None:
            return value
        try:
            with db.begin_nested():
                db.execute(insert(counters).values(key=ORDERS_KEY, value=1))
            return 1
        except IntegrityError:
            # another writer created the row first
            value = _increment(db)
            if value is None:
                raise SequenceUnavailable("Order counter row vanished")
            return value
    except SQLAlchemyError as e:
        logger.error("Order counter increment failed: %s", e)
        raise SequenceUnavailable("Order counter unavailable") from e


def next_order_number(db) -> str:
    order_number = format_order_number(next_sequence_value(db))
    logger.info("Generated order number: %s", order_number)
    return order_number


def peek_next_order_number(db) -> str:
    current = db.execute(
        select(counters.c.value).where(counters.c.key == ORDERS_KEY)
    ).scalar_one_or_none()
    return format_order_number((current or 0) + 1)
