import logging

from checkout import config, stripe_service
from checkout.errors import MerchantNotConfigured, MerchantOnboardingFailed, ProcessorError
from checkout.models import MerchantAccount

logger = logging.getLogger(__name__)

PENDING = "pending"
SUBMITTED = "submitted"
ACTIVE = "active"


def derive_status(charges_enabled: bool, payouts_enabled: bool, details_submitted: bool) -> str:
    if charges_enabled and payouts_enabled:
        return ACTIVE
    if details_submitted:
        return SUBMITTED
    return PENDING


def _flags(account) -> dict:
    # Stripe omits false capability flags on freshly created accounts
    def flag(name):
        value = account.get(name) if isinstance(account, dict) else getattr(account, name, None)
        return bool(value)

    return {
        "charges_enabled": flag("charges_enabled"),
        "payouts_enabled": flag("payouts_enabled"),
        "details_submitted": flag("details_submitted"),
    }


def load_merchant_account(db):
    return db.get(MerchantAccount, MerchantAccount.SINGLETON_ID)


def require_merchant_account(db) -> MerchantAccount:
    merchant = load_merchant_account(db)
    if merchant is None or not merchant.account_id:
        raise MerchantNotConfigured(
            "Restaurant Stripe account not set up. Please complete onboarding first.",
            code="merchant_not_configured",
        )
    if merchant.status != ACTIVE:
        logger.warning(
            "Merchant account %s is not active (status=%s)", merchant.account_id, merchant.status
        )
    return merchant


def _apply_flags(merchant: MerchantAccount, flags: dict) -> None:
    merchant.charges_enabled = flags["charges_enabled"]
    merchant.payouts_enabled = flags["payouts_enabled"]
    merchant.details_submitted = flags["details_submitted"]
    merchant.status = derive_status(**flags)


def start_onboarding(db, email=None) -> dict:
    """Create (or reuse) the Express account and return a hosted onboarding link."""
    merchant = load_merchant_account(db)
    account = None
    is_new = False

    if merchant is not None and merchant.account_id:
        try:
            account = stripe_service.retrieve_account(merchant.account_id)
        except ProcessorError as e:
            if e.retryable:
                raise MerchantOnboardingFailed(e.message, code=e.code, retryable=True) from e
            logger.warning(
                "Stored account %s could not be retrieved (%s), creating a new one",
                merchant.account_id,
                e.code,
            )

    try:
        if account is None:
            account = stripe_service.create_express_account(config.MERCHANT_COUNTRY, email)
            is_new = True
            logger.info("Created Stripe Express account %s", account.id)

        flags = _flags(account)
        link_type = "account_update" if derive_status(**flags) == ACTIVE else "account_onboarding"
        link = stripe_service.create_account_link(
            account.id,
            refresh_url=config.FRONTEND_ADMIN_URL,
            return_url=config.FRONTEND_ADMIN_URL,
            link_type=link_type,
        )
    except ProcessorError as e:
        raise MerchantOnboardingFailed(
            f"Failed to create onboarding link: {e.message}", code=e.code, retryable=e.retryable
        ) from e

    if merchant is None:
        merchant = MerchantAccount(id=MerchantAccount.SINGLETON_ID)
        db.add(merchant)
    merchant.account_id = account.id
    merchant.onboarding_link = link.url
    _apply_flags(merchant, flags)
    db.commit()

    logger.info("Created %s link for account %s", link_type, account.id)
    return {
        "account_id": merchant.account_id,
        "status": merchant.status,
        "onboarding_link": link.url,
        "link_type": link_type,
        "is_new_account": is_new,
    }


def refresh_account_status(db) -> dict:
    merchant = load_merchant_account(db)
    if merchant is None or not merchant.account_id:
        raise MerchantNotConfigured(
            "No Stripe account found. Please create an account first.",
            code="merchant_not_configured",
        )

    account = stripe_service.retrieve_account(merchant.account_id)
    _apply_flags(merchant, _flags(account))
    db.commit()
    return account_summary(merchant)


def apply_account_update(db, account) -> bool:
    """Apply an ``account.updated`` event payload to the stored account."""
    merchant = load_merchant_account(db)
    if merchant is None or merchant.account_id != account.get("id"):
        logger.info("Ignoring account.updated for unknown account %s", account.get("id"))
        return False

    _apply_flags(merchant, _flags(account))
    db.commit()
    logger.info("Merchant account %s is now %s", merchant.account_id, merchant.status)
    return True


def account_summary(merchant: MerchantAccount) -> dict:
    return {
        "account_id": merchant.account_id,
        "status": merchant.status,
        "charges_enabled": merchant.charges_enabled,
        "payouts_enabled": merchant.payouts_enabled,
        "details_submitted": merchant.details_submitted,
    }
