import os

# Must be set before checkout.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_checkout.db")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from checkout.database import Base, make_engine
from checkout.main import app as fastapi_app
from checkout.models import MerchantAccount
import checkout.auth

MERCHANT_ACCOUNT_ID = "acct_restaurant_123"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'checkout.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def TestingSessionLocal(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(TestingSessionLocal):
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def merchant(TestingSessionLocal):
    session = TestingSessionLocal()
    session.add(
        MerchantAccount(
            id=MerchantAccount.SINGLETON_ID,
            account_id=MERCHANT_ACCOUNT_ID,
            status="active",
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
        )
    )
    session.commit()
    session.close()
    return MERCHANT_ACCOUNT_ID


@pytest.fixture
def client(monkeypatch, TestingSessionLocal):
    # Point every module that opens sessions at the test database
    monkeypatch.setattr("checkout.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("checkout.main.SessionLocal", TestingSessionLocal)

    # Bypass staff auth for tests
    fastapi_app.dependency_overrides[checkout.auth.verify_token] = lambda: {"role": "staff"}

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_intent(mocker):
    def _make(id="pi_test_123", status="succeeded", amount=4200, metadata=None):
        intent = mocker.Mock()
        intent.id = id
        intent.status = status
        intent.amount = amount
        intent.currency = "aud"
        intent.application_fee_amount = 200
        intent.client_secret = f"{id}_secret"
        intent.metadata = metadata or {}
        return intent

    return _make
