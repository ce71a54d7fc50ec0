import logging

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from checkout import config, stripe_service
from checkout.database import Base, SessionLocal, engine
from checkout.errors import CheckoutError, InvalidSignature, OrderCreationFailed
from checkout.routes import router
from checkout.webhooks import handle_event

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

HTTP_STATUS = {
    "invalid-argument": 400,
    "not-found": 404,
    "failed-precondition": 409,
    "unavailable": 503,
    "internal": 500,
}

app = FastAPI(title="Restaurant Checkout Service")

app.include_router(router)

Base.metadata.create_all(bind=engine)


def error_body(kind, message, code=None, details=None):
    return {"error": {"kind": kind, "message": message, "code": code, "details": details or {}}}


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    if isinstance(exc, OrderCreationFailed):
        logger.critical("Order creation failed after payment %s", exc.payment_intent_id)
    elif exc.kind in ("internal", "unavailable"):
        logger.error("%s %s failed: %s (code=%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(
        status_code=HTTP_STATUS.get(exc.kind, 500),
        content=error_body(exc.kind, exc.message, exc.code, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content=error_body("invalid-argument", "Missing or invalid fields", "validation_error", {"fields": fields}),
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    # Raw bytes: re-serialized JSON would not match the signature
    payload = await request.body()

    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    secret = config.webhook_secret()
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=400, detail="Webhook secret not configured")

    try:
        event = stripe_service.construct_event(payload, stripe_signature, secret)
    except InvalidSignature as e:
        raise HTTPException(status_code=400, detail=e.message)

    logger.info("Received Stripe event: %s", event["type"])

    def process():
        db = SessionLocal()
        try:
            handle_event(db, event)
        finally:
            db.close()

    await run_in_threadpool(process)
    return {"received": True}
