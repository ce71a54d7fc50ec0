from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderItem(BaseModel):
    name: str
    price: Decimal
    quantity: int = 1
    variation: Optional[str] = None


class CustomerInfo(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    order_type: str = "pickup"


class PaymentIntentRequest(BaseModel):
    # Validated by the fee calculator so bad amounts map to InvalidAmount
    subtotal: Optional[Decimal] = None
    items: List[OrderItem]
    customer_info: CustomerInfo
    idempotency_key: Optional[str] = None


class OrderPayload(BaseModel):
    subtotal: Decimal
    service_fee: Decimal = Decimal("0")
    amount: Optional[Decimal] = None
    items: List[OrderItem] = Field(default_factory=list)
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1)
    order: OrderPayload


class OnboardingRequest(BaseModel):
    email: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str
