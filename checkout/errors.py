"""
Checkout error taxonomy.

Every error carries a transport ``kind`` that the API layer maps to an HTTP
status and a structured error body.
"""

from typing import Any, Dict, Optional


class CheckoutError(Exception):
    """Base exception for checkout failures."""

    kind = "internal"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class InvalidArgument(CheckoutError):
    """Request input is missing or malformed."""

    kind = "invalid-argument"


class InvalidAmount(InvalidArgument):
    """Subtotal is not a positive, finite amount."""


class PreconditionFailed(CheckoutError):
    """System state does not allow the operation yet."""

    kind = "failed-precondition"


class MerchantNotConfigured(PreconditionFailed):
    """No connected merchant account has been onboarded."""


class PaymentNotSucceeded(PreconditionFailed):
    """Payment exists but has not reached the succeeded state."""

    def __init__(self, payment_intent_id: str, current_status: str) -> None:
        super().__init__(
            f"Payment not completed. Status: {current_status}",
            code="payment_not_succeeded",
            details={"payment_intent_id": payment_intent_id, "status": current_status},
        )
        self.payment_intent_id = payment_intent_id
        self.current_status = current_status


class InvalidStatusTransition(PreconditionFailed):
    """Order status change would move backwards or leave a terminal state."""


class NotFound(CheckoutError):
    kind = "not-found"


class PaymentNotFound(NotFound):
    """Stripe has no record of the payment in the given account context."""


class OrderNotFound(NotFound):
    pass


class ProcessorError(CheckoutError):
    """Stripe rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.retryable = retryable

    @property
    def kind(self) -> str:
        return "unavailable" if self.retryable else "internal"


class PaymentInitiationFailed(ProcessorError):
    pass


class PaymentVerificationFailed(ProcessorError):
    pass


class MerchantOnboardingFailed(ProcessorError):
    pass


class InvalidSignature(CheckoutError):
    """Webhook payload could not be authenticated."""

    kind = "invalid-argument"


class SequenceUnavailable(CheckoutError):
    """Order counter could not be incremented."""


class OrderCreationFailed(CheckoutError):
    """Payment succeeded but the order could not be persisted."""

    def __init__(self, payment_intent_id: str, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or "Payment succeeded but the order could not be recorded. "
            "It has been flagged for manual reconciliation.",
            code="order_creation_failed",
            details={"payment_intent_id": payment_intent_id, "reconciliation_required": True},
        )
        self.payment_intent_id = payment_intent_id
