import stripe
from jose import jwt

from checkout.errors import OrderCreationFailed
from checkout.main import app as fastapi_app
from checkout.models import Order
from checkout.orders import materialize_order
from checkout.schemas import OrderPayload

CHECKOUT_REQUEST = {
    "subtotal": 40.00,
    "items": [{"name": "Devilled Chicken", "price": 20.00, "quantity": 2}],
    "customer_info": {"first_name": "Kamal", "last_name": "Silva", "email": "kamal@example.com"},
}

ORDER_PAYLOAD = {
    "subtotal": 40.00,
    "service_fee": 2.00,
    "amount": 42.00,
    "items": [{"name": "Devilled Chicken", "price": 20.00, "quantity": 2}],
    "customer_info": {"first_name": "Kamal", "last_name": "Silva", "email": "kamal@example.com"},
}


def seed_order(TestingSessionLocal, payment_intent_id="pi_seed"):
    db = TestingSessionLocal()
    result = materialize_order(db, payment_intent_id, OrderPayload(**ORDER_PAYLOAD), "aud")
    db.close()
    return result


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_payment_intent_success(client, merchant, mocker, make_intent):
    mocker.patch("stripe.PaymentIntent.create", return_value=make_intent(id="pi_123"))

    response = client.post("/payments/intent", json=CHECKOUT_REQUEST)

    assert response.status_code == 200
    body = response.json()
    assert body["client_secret"] == "pi_123_secret"
    assert body["payment_intent_id"] == "pi_123"
    assert body["account_id"] == merchant
    assert body["total"] == 42.0


def test_create_payment_intent_without_merchant(client):
    response = client.post("/payments/intent", json=CHECKOUT_REQUEST)

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "failed-precondition"


def test_create_payment_intent_invalid_amount(client, merchant):
    response = client.post("/payments/intent", json={**CHECKOUT_REQUEST, "subtotal": -1})

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "invalid-argument"
    assert response.json()["error"]["code"] == "invalid_amount"


def test_create_payment_intent_missing_fields(client, merchant):
    response = client.post("/payments/intent", json={"subtotal": 40})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["kind"] == "invalid-argument"
    assert "items" in error["details"]["fields"]


def test_create_payment_intent_stripe_unavailable(client, merchant, mocker):
    mocker.patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("timed out"))

    response = client.post("/payments/intent", json=CHECKOUT_REQUEST)

    assert response.status_code == 503
    assert response.json()["error"]["kind"] == "unavailable"


def test_confirm_payment_creates_order(client, merchant, mocker, make_intent):
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=make_intent(id="pi_confirm"))

    response = client.post(
        "/payments/confirm", json={"payment_intent_id": "pi_confirm", "order": ORDER_PAYLOAD}
    )

    assert response.status_code == 200
    assert response.json()["order_number"] == "#001"
    assert response.json()["created"] is True


def test_confirm_payment_not_succeeded(client, merchant, mocker, make_intent, TestingSessionLocal):
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=make_intent(status="requires_action"))

    response = client.post(
        "/payments/confirm", json={"payment_intent_id": "pi_test_123", "order": ORDER_PAYLOAD}
    )

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "failed-precondition"
    assert response.json()["error"]["details"]["status"] == "requires_action"

    db = TestingSessionLocal()
    assert db.query(Order).count() == 0
    db.close()


def test_confirm_payment_missing_fields(client, merchant):
    response = client.post("/payments/confirm", json={"order": ORDER_PAYLOAD})

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "invalid-argument"


def test_confirm_payment_unknown_intent(client, merchant, mocker):
    mocker.patch(
        "stripe.PaymentIntent.retrieve",
        side_effect=stripe.InvalidRequestError("No such payment_intent", "intent", code="resource_missing"),
    )

    response = client.post(
        "/payments/confirm", json={"payment_intent_id": "pi_missing", "order": ORDER_PAYLOAD}
    )

    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "not-found"


def test_confirm_payment_store_failure_is_internal(client, merchant, mocker, make_intent):
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=make_intent(id="pi_gap"))
    mocker.patch("checkout.routes.materialize_order", side_effect=OrderCreationFailed("pi_gap"))

    response = client.post(
        "/payments/confirm", json={"payment_intent_id": "pi_gap", "order": ORDER_PAYLOAD}
    )

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["kind"] == "internal"
    assert error["code"] == "order_creation_failed"
    assert error["details"]["reconciliation_required"] is True


def test_merchant_onboarding(client, mocker):
    account = mocker.Mock(id="acct_new", charges_enabled=False, payouts_enabled=False, details_submitted=False)
    mocker.patch("stripe.Account.create", return_value=account)
    mocker.patch("stripe.AccountLink.create", return_value=mocker.Mock(url="https://connect.stripe.com/x"))

    response = client.post("/merchant/onboarding", json={"email": "owner@example.com"})

    assert response.status_code == 200
    assert response.json()["link_type"] == "account_onboarding"
    assert response.json()["onboarding_link"] == "https://connect.stripe.com/x"


def test_merchant_status(client, merchant, mocker):
    account = mocker.Mock(id=merchant, charges_enabled=True, payouts_enabled=True, details_submitted=True)
    mocker.patch("stripe.Account.retrieve", return_value=account)

    response = client.get("/merchant/status")

    assert response.status_code == 200
    assert response.json()["status"] == "active"


def test_merchant_status_not_configured(client):
    response = client.get("/merchant/status")

    assert response.status_code == 409


def test_orders_list_and_status_update(client, TestingSessionLocal):
    created = seed_order(TestingSessionLocal)

    response = client.get("/orders", params={"status": "pending"})
    assert response.status_code == 200
    assert [o["order_number"] for o in response.json()["orders"]] == [created.order_number]

    response = client.patch(f"/orders/{created.order_id}/status", json={"status": "preparing"})
    assert response.status_code == 200
    assert response.json()["status"] == "preparing"

    response = client.patch(f"/orders/{created.order_id}/status", json={"status": "pending"})
    assert response.status_code == 409

    response = client.patch("/orders/missing/status", json={"status": "ready"})
    assert response.status_code == 404


def test_next_order_number_preview(client, TestingSessionLocal):
    assert client.get("/orders/next-number").json() == {"order_number": "#001"}

    seed_order(TestingSessionLocal)

    assert client.get("/orders/next-number").json() == {"order_number": "#002"}


def test_staff_endpoints_require_token(client):
    fastapi_app.dependency_overrides.clear()

    assert client.get("/orders").status_code == 401
    assert client.get("/orders", headers={"Authorization": "Bearer nonsense"}).status_code == 401

    customer = jwt.encode({"sub": "c1", "role": "customer"}, "test-jwt-secret", algorithm="HS256")
    assert client.get("/orders", headers={"Authorization": f"Bearer {customer}"}).status_code == 401

    staff = jwt.encode({"sub": "s1", "role": "staff"}, "test-jwt-secret", algorithm="HS256")
    assert client.get("/orders", headers={"Authorization": f"Bearer {staff}"}).status_code == 200


def test_stripe_webhook_invalid_signature(client, mocker):
    mocker.patch(
        "stripe.Webhook.construct_event",
        side_effect=stripe.SignatureVerificationError("Invalid", "sig"),
    )

    response = client.post("/webhook", content="raw_payload", headers={"stripe-signature": "invalid_sig"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_stripe_webhook_missing_signature(client, mocker):
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = client.post("/webhook", content="raw_payload")

    assert response.status_code == 400
    construct.assert_not_called()


def test_stripe_webhook_secret_not_configured(client, mocker, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = client.post("/webhook", content="raw_payload", headers={"stripe-signature": "sig"})

    assert response.status_code == 400
    construct.assert_not_called()
