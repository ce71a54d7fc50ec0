import logging

import stripe

from checkout import config
from checkout.errors import InvalidSignature, ProcessorError

logger = logging.getLogger(__name__)

stripe.api_key = config.STRIPE_SECRET_KEY
# Callers own retries; a hung request surfaces as a retryable error
stripe.max_network_retries = 0
stripe.default_http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)

RESOURCE_MISSING = "resource_missing"


def to_plain(value):
    """Recursively copy a Stripe object into plain dicts and lists."""
    # not a dict subclass in newer SDK releases
    if isinstance(value, stripe.StripeObject) and not isinstance(value, dict):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def is_retryable(error: stripe.StripeError) -> bool:
    if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError)):
        return True
    status = getattr(error, "http_status", None)
    return status is not None and status >= 500


def _convert(error: stripe.StripeError, error_cls=ProcessorError) -> ProcessorError:
    return error_cls(
        message=str(error.user_message or error),
        code=getattr(error, "code", None),
        retryable=is_retryable(error),
    )


def create_express_account(country: str, email=None):
    try:
        params = {"type": "express", "country": country}
        if email:
            params["email"] = email
        return stripe.Account.create(**params)
    except stripe.StripeError as e:
        raise _convert(e) from e


def retrieve_account(account_id: str):
    try:
        return stripe.Account.retrieve(account_id)
    except stripe.StripeError as e:
        raise _convert(e) from e


def create_account_link(account_id: str, refresh_url: str, return_url: str, link_type: str):
    try:
        return stripe.AccountLink.create(
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type=link_type,
        )
    except stripe.StripeError as e:
        raise _convert(e) from e


def create_payment_intent(
    amount: int,
    currency: str,
    application_fee_amount: int,
    account_id: str,
    metadata: dict,
    idempotency_key=None,
):
    """Create a direct charge on the connected account.

    The charge lives on the merchant's account, the merchant is the
    liable party, and the platform collects ``application_fee_amount``.
    """
    params = dict(
        amount=amount,
        currency=currency,
        application_fee_amount=application_fee_amount,
        automatic_payment_methods={"enabled": True},
        metadata=metadata,
        stripe_account=account_id,
    )
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    try:
        return stripe.PaymentIntent.create(**params)
    except stripe.StripeError as e:
        raise _convert(e) from e


def retrieve_payment_intent(payment_intent_id: str, account_id: str):
    """Retrieve from the same connected account the intent was created on.

    Raises ``ProcessorError`` with code ``resource_missing`` when Stripe has
    no such intent in that account.
    """
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id, stripe_account=account_id)
    except stripe.StripeError as e:
        raise _convert(e) from e


def construct_event(payload: bytes, signature: str, secret: str):
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as e:
        logger.warning("Invalid Stripe webhook payload: %s", e)
        raise InvalidSignature("Invalid payload", code="invalid_payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning("Invalid Stripe webhook signature: %s", e)
        raise InvalidSignature("Invalid signature", code="invalid_signature") from e
    return to_plain(event)
