"""Pytest fixtures for testing"""

import hashlib
import hmac
import time
import httpx
import pytest
import stripe
from typing import Callable, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from mock_servers.stripe_server.main import app as mock_stripe_app
from splitpay_gateway.api.main import create_app
from splitpay_gateway.infrastructure.database.models import Base
from splitpay_gateway.infrastructure.database.session import Database, get_db
from splitpay_gateway.infrastructure.providers.base import PaymentProviderAdapter
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry
from splitpay_gateway.domain.exceptions import ProviderError
from splitpay_gateway.domain.models import (
    AllocationRequest,
    ChargeResult,
    PaymentMethodSpec,
    SettlementOutcome,
    SettlementRequest,
)


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
test_database = Database(TEST_DATABASE_URL)


class TransportHTTPClient(stripe.HTTPClient):
    """stripe-python HTTP client over an httpx transport (ASGI app or mock)"""

    name = "httpx-transport"

    def __init__(self, transport: httpx.AsyncBaseTransport):
        super().__init__()
        self._client = httpx.AsyncClient(transport=transport)

    def request(self, method, url, headers, post_data=None):
        raise NotImplementedError("TransportHTTPClient is async only")

    async def request_async(self, method, url, headers, post_data=None):
        try:
            response = await self._client.request(method, url, headers=headers, content=post_data)
        except httpx.HTTPError as e:
            raise stripe.APIConnectionError(f"Transport error: {e}", should_retry=False) from e
        return response.content, response.status_code, response.headers

    async def close_async(self):
        await self._client.aclose()


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for a payload"""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


class FakeProvider(PaymentProviderAdapter):
    """In-memory provider that records every call"""

    def __init__(self, name: str, succeed: bool = True, error: str | None = None, raises: bool = False):
        self.name = name
        self.succeed = succeed
        self.error = error
        self.raises = raises
        self.charges: List[dict] = []
        self.settled: List[SettlementRequest] = []

    async def create_charge(self, amount, currency, metadata, description=""):
        self.charges.append({"amount": amount, "currency": currency, "metadata": metadata})
        if self.raises:
            raise ProviderError(self.error or f"{self.name} unavailable")
        ref = f"cs_{self.name}_{len(self.charges)}"
        return ChargeResult(transaction_ref=ref, checkout_url=f"https://{self.name}.test/checkout/{ref}")

    async def settle(self, request: SettlementRequest) -> SettlementOutcome:
        self.settled.append(request)
        if self.raises:
            raise ProviderError(self.error or f"{self.name} unavailable")
        if self.succeed:
            return SettlementOutcome(success=True, provider_ref=f"pi_{self.name}_{len(self.settled)}")
        return SettlementOutcome(success=False, error=self.error or "card_declined")


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=test_database.engine)
    db = test_database.session()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_database.engine)


@pytest.fixture
def other_session(db: Session) -> Generator[Session, None, None]:
    """Independent session on the same database, standing in for a second worker"""
    session = test_database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stripe_provider() -> FakeProvider:
    return FakeProvider("stripe")


@pytest.fixture
def providers(stripe_provider: FakeProvider) -> ProviderRegistry:
    """Stripe succeeds, PayPal declines, nothing else is registered"""
    return ProviderRegistry(
        [
            stripe_provider,
            FakeProvider("paypal", succeed=False, error="PayPal integration not implemented yet"),
        ]
    )


@pytest.fixture
def client(db: Session, providers: ProviderRegistry) -> TestClient:
    """Create FastAPI test client with test database and fake providers"""
    app = create_app(providers=providers)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def card_and_wallet() -> List[AllocationRequest]:
    """Two-method allocation template: 600 on a card, 400 on PayPal"""
    return [
        AllocationRequest(method=PaymentMethodSpec(name="Visa 4242", type="card", provider="stripe"), amount=600),
        AllocationRequest(method=PaymentMethodSpec(name="PayPal", type="wallet", provider="paypal"), amount=400),
    ]


@pytest.fixture
def stripe_http_client() -> Callable[..., TransportHTTPClient]:
    """Factory for SDK HTTP clients; defaults to the in-process mock Stripe server"""

    def build(transport: httpx.AsyncBaseTransport | None = None) -> TransportHTTPClient:
        return TransportHTTPClient(transport or httpx.ASGITransport(app=mock_stripe_app))

    return build


@pytest.fixture
def sign_webhook() -> Callable[..., str]:
    return sign_payload
