import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String

from checkout.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderStatus:
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    # Forward order of the kitchen workflow; cancelled sits outside it
    FLOW = (PENDING, PREPARING, READY, COMPLETED)
    ALL = FLOW + (CANCELLED,)
    TERMINAL = (COMPLETED, CANCELLED)


class OrderSource:
    CHECKOUT = "checkout"
    WEBHOOK_METADATA = "webhook_metadata"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    order_number = Column(String, nullable=False, index=True)
    payment_intent_id = Column(String, nullable=False, unique=True, index=True)
    status = Column(String, nullable=False, default=OrderStatus.PENDING)
    amount = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    customer_info = Column(JSON, nullable=False)
    items = Column(JSON, nullable=False)
    order_type = Column(String, nullable=False, default="pickup")
    source = Column(String, nullable=False, default=OrderSource.CHECKOUT)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class MerchantAccount(Base):
    __tablename__ = "merchant_accounts"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True)                 # always SINGLETON_ID
    account_id = Column(String, nullable=False)            # Stripe connected account (acct_...)
    status = Column(String, nullable=False)                # pending | submitted | active
    charges_enabled = Column(Boolean, nullable=False, default=False)
    payouts_enabled = Column(Boolean, nullable=False, default=False)
    details_submitted = Column(Boolean, nullable=False, default=False)
    onboarding_link = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class OrderCounter(Base):
    __tablename__ = "order_counters"

    key = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)
