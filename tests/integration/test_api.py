"""Integration tests for API endpoints"""

import json
import uuid
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from splitpay_gateway.config import settings
from splitpay_gateway.infrastructure.database.models import User

WEBHOOK_SECRET = "whsec_test"


@pytest.fixture
def webhook_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "webhook_verify_signatures", True)
    return WEBHOOK_SECRET


def _slug(link: dict) -> str:
    return link["link"].rsplit("/", 1)[1]


def _create(client: TestClient, **overrides) -> dict:
    body = {"title": "Team dinner", "total_amount": 1000, "num_payers": 2}
    body.update(overrides)
    response = client.post("/v1/collections", json=body)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def post_event(client: TestClient, webhook_secret: str, sign_webhook):
    """Deliver a signed Stripe event to the webhook endpoint"""

    def deliver(event_type: str, obj: dict, secret: str = webhook_secret):
        payload = json.dumps({"id": f"evt_{uuid.uuid4().hex[:12]}", "type": event_type, "data": {"object": obj}}).encode()
        return client.post(
            "/v1/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign_webhook(payload, secret), "content-type": "application/json"},
        )

    return deliver


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    _create(client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "splitpay_collections_created" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"x-request-id": "req-123"})
    assert response.headers["x-request-id"] == "req-123"


def test_create_collection_equal_split(client: TestClient):
    data = _create(
        client,
        total_amount=100,
        num_payers=3,
        payer_names=["Asha", "Ben"],
        creator_email="host@example.com",
    )

    assert data["status"] == "PENDING"
    assert data["currency"] == "INR"
    assert data["creator_email"] == "host@example.com"
    assert [link["share_amount"] for link in data["links"]] == [34, 33, 33]
    assert [link["name"] for link in data["links"]] == ["Asha", "Ben", "Payer 3"]
    assert all(link["link"].startswith(f"{settings.app_base_url}/pay/pay-") for link in data["links"])
    assert data["payment_id"] is None


def test_create_collection_custom_split_mismatch(client: TestClient):
    response = client.post(
        "/v1/collections",
        json={"title": "Groceries", "total_amount": 100, "num_payers": 3, "custom_amounts": [33, 33, 33]},
    )

    assert response.status_code == 422
    assert "must equal total amount" in response.json()["detail"]
    assert client.get("/v1/collections").json() == []


@pytest.mark.parametrize(
    "body",
    [
        {"title": "x", "total_amount": 0, "num_payers": 2},
        {"title": "x", "total_amount": 100, "num_payers": 101},
        {"title": "x", "total_amount": 100, "num_payers": 2, "payment_mode": "group"},
        {"title": "", "total_amount": 100, "num_payers": 2},
        {"title": "x", "total_amount": "lots", "num_payers": 2},
    ],
)
def test_create_collection_rejects_invalid_input(client: TestClient, body: dict):
    response = client.post("/v1/collections", json=body)
    assert response.status_code == 422


def test_create_self_pay_collection_with_allocations(client: TestClient):
    data = _create(
        client,
        total_amount=1000,
        num_payers=1,
        payment_mode="self-pay",
        creator_email="solo@example.com",
        payment_methods=[
            {"id": "m1", "name": "Visa 4242", "provider": "stripe"},
            {"id": "m2", "name": "Amex", "provider": "stripe"},
            {"id": "m3", "name": "PayPal", "type": "wallet", "provider": "paypal"},
        ],
        allocations={"m1": 600, "m2": 400, "m3": 0},
    )

    assert data["num_payers"] == 1
    assert data["links"][0]["name"] == "solo"
    assert data["payment_id"] is not None


def test_unknown_payment_method_is_rejected(client: TestClient):
    response = client.post(
        "/v1/collections",
        json={
            "title": "Gift",
            "total_amount": 1000,
            "num_payers": 1,
            "payment_mode": "self-pay",
            "payment_methods": [],
            "allocations": {"m9": 1000},
        },
    )
    assert response.status_code == 422
    assert response.json()["detail"] == "Unknown payment method: m9"


def test_get_and_list_collections(client: TestClient):
    created = _create(client)

    response = client.get(f"/v1/collections/{created['collection_id']}")
    assert response.status_code == 200
    assert response.json()["links"] == created["links"]

    listed = client.get("/v1/collections").json()
    assert [c["collection_id"] for c in listed] == [created["collection_id"]]


def test_get_collection_errors(client: TestClient):
    assert client.get("/v1/collections/not-a-uuid").status_code == 400
    assert client.get(f"/v1/collections/{uuid.uuid4()}").status_code == 404


def test_get_payer_by_slug(client: TestClient):
    created = _create(client, title="Cab ride")
    slug = _slug(created["links"][1])

    response = client.get(f"/v1/payers/{slug}")
    assert response.status_code == 200
    data = response.json()
    assert data["pay_link_slug"] == slug
    assert data["share_amount"] == 500
    assert data["status"] == "UNPAID"
    assert data["collection"]["title"] == "Cab ride"
    assert data["latest_payment"] is None

    assert client.get("/v1/payers/pay-missing").status_code == 404


def test_checkout_creates_provider_session(client: TestClient, stripe_provider):
    created = _create(client, title="Concert")
    link = created["links"][0]

    response = client.post("/v1/checkout", json={"payer_slug": _slug(link)})

    assert response.status_code == 200
    assert response.json()["session_id"] == "cs_stripe_1"
    charge = stripe_provider.charges[0]
    assert charge["amount"] == 500
    assert charge["currency"] == "INR"
    assert charge["metadata"]["payerId"] == link["payer_id"]
    assert charge["metadata"]["collectionId"] == created["collection_id"]
    assert charge["metadata"]["collectionTitle"] == "Concert"


def test_checkout_errors(client: TestClient, stripe_provider):
    created = _create(client)
    link = created["links"][0]
    client.post("/v1/payments/cancel", json={"payer_id": link["payer_id"], "collection_id": created["collection_id"]})

    assert client.post("/v1/checkout", json={"payer_slug": "pay-missing"}).status_code == 404
    response = client.post("/v1/checkout", json={"payer_slug": _slug(link)})
    assert response.status_code == 409
    assert response.json()["detail"] == "Payment was cancelled"

    stripe_provider.raises = True
    assert client.post("/v1/checkout", json={"payer_slug": _slug(created["links"][1])}).status_code == 503


def test_cancel_payer(client: TestClient):
    created = _create(client)
    body = {"payer_id": created["links"][0]["payer_id"], "collection_id": created["collection_id"]}

    response = client.post("/v1/payments/cancel", json=body)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["message"] == "Payment cancelled successfully"

    again = client.post("/v1/payments/cancel", json=body)
    assert again.status_code == 404
    assert again.json()["detail"] == "Payer not found or already processed"

    bad = client.post("/v1/payments/cancel", json={"payer_id": "nope", "collection_id": created["collection_id"]})
    assert bad.status_code == 400


def test_checkout_webhook_marks_payer_paid(client: TestClient, post_event):
    created = _create(client)
    first, second = created["links"]
    session = {
        "id": "cs_1",
        "payment_intent": "pi_1",
        "amount_total": 500,
        "metadata": {"payerId": first["payer_id"], "collectionId": created["collection_id"]},
    }

    response = post_event("checkout.session.completed", session)
    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "processed"}

    replay = post_event("checkout.session.completed", session)
    assert replay.json()["outcome"] == "ignored"

    payer = client.get(f"/v1/payers/{_slug(first)}").json()
    assert payer["status"] == "PAID"
    assert payer["latest_payment"]["provider_ref"] == "pi_1"
    assert payer["collection"]["status"] == "PARTIAL"

    # Cancelling a paid payer is rejected and leaves it paid
    cancel = client.post("/v1/payments/cancel", json={"payer_id": first["payer_id"], "collection_id": created["collection_id"]})
    assert cancel.status_code == 404

    client.post("/v1/payments/cancel", json={"payer_id": second["payer_id"], "collection_id": created["collection_id"]})
    assert client.get(f"/v1/collections/{created['collection_id']}").json()["status"] == "COMPLETED"


def test_webhook_rejects_bad_signature(client: TestClient, post_event):
    response = post_event("checkout.session.completed", {"id": "cs_1"}, secret="whsec_other")
    assert response.status_code == 400

    unsigned = client.post("/v1/webhooks/stripe", content=b"{}")
    assert unsigned.status_code == 400


def test_webhook_without_metadata_is_dropped(client: TestClient, post_event):
    response = post_event("checkout.session.completed", {"id": "cs_1", "metadata": {}})
    assert response.status_code == 200
    assert response.json()["outcome"] == "dropped"

    unknown_rows = post_event(
        "checkout.session.completed",
        {"id": "cs_2", "metadata": {"payerId": str(uuid.uuid4()), "collectionId": str(uuid.uuid4())}},
    )
    assert unknown_rows.json()["outcome"] == "dropped"


def test_webhook_ignores_unhandled_events(client: TestClient, post_event):
    assert post_event("customer.created", {"id": "cus_1"}).json()["outcome"] == "ignored"
    assert post_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {}}).json()["outcome"] == "ignored"


def test_multi_card_flow(client: TestClient):
    created = _create(
        client,
        total_amount=1000,
        num_payers=1,
        payment_mode="self-pay",
        payment_methods=[
            {"id": "card", "name": "Visa 4242", "provider": "stripe"},
            {"id": "wallet", "name": "PayPal", "type": "wallet", "provider": "paypal"},
        ],
        allocations={"card": 600, "wallet": 400},
    )
    payment_id = created["payment_id"]

    response = client.post(f"/v1/payments/multi-card/{payment_id}/process")
    assert response.status_code == 200
    data = response.json()
    assert data["all_completed"] is False
    assert data["message"] == "Some payments failed"
    assert [r["success"] for r in data["results"]] == [True, False]

    assert client.post(f"/v1/payments/multi-card/{payment_id}/process").status_code == 409
    slug = _slug(created["links"][0])
    assert client.get(f"/v1/payers/{slug}").json()["status"] == "UNPAID"

    retry = client.post(
        "/v1/payments/multi-card",
        json={
            "payer_slug": slug,
            "payment_methods": [
                {"id": "a", "name": "Visa 4242", "provider": "stripe"},
                {"id": "b", "name": "Mastercard 5555", "provider": "stripe"},
            ],
            "allocations": {"a": 500, "b": 500},
        },
    )
    assert retry.status_code == 201
    assert [a["status"] for a in retry.json()["allocations"]] == ["PENDING", "PENDING"]

    processed = client.post(f"/v1/payments/multi-card/{retry.json()['payment_id']}/process")
    assert processed.json()["all_completed"] is True
    assert processed.json()["message"] == "All payments processed successfully"
    assert client.get(f"/v1/payers/{slug}").json()["status"] == "PAID"

    again = client.post(
        "/v1/payments/multi-card",
        json={"payer_slug": slug, "payment_methods": [{"id": "a", "name": "Visa", "provider": "stripe"}], "allocations": {"a": 1000}},
    )
    assert again.status_code == 409


def test_processing_after_cancel_charges_nothing(client: TestClient, stripe_provider):
    created = _create(
        client,
        total_amount=1000,
        num_payers=1,
        payment_mode="self-pay",
        payment_methods=[
            {"id": "a", "name": "Visa 4242", "provider": "stripe"},
            {"id": "b", "name": "Mastercard 5555", "provider": "stripe"},
        ],
        allocations={"a": 500, "b": 500},
    )
    payer_id = created["links"][0]["payer_id"]
    cancel = client.post("/v1/payments/cancel", json={"payer_id": payer_id, "collection_id": created["collection_id"]})
    assert cancel.status_code == 200

    response = client.post(f"/v1/payments/multi-card/{created['payment_id']}/process")

    assert response.status_code == 409
    assert stripe_provider.settled == []
    assert client.get(f"/v1/payers/{_slug(created['links'][0])}").json()["status"] == "CANCELLED"


def test_multi_card_validation_errors(client: TestClient):
    created = _create(client, total_amount=1000, num_payers=2)
    slug = _slug(created["links"][0])
    methods = [{"id": "a", "name": "Visa", "provider": "stripe"}]

    mismatch = client.post("/v1/payments/multi-card", json={"payer_slug": slug, "payment_methods": methods, "allocations": {"a": 400}})
    assert mismatch.status_code == 422
    assert mismatch.json()["detail"] == "Total allocation (400) must equal share amount (500)"

    missing = client.post("/v1/payments/multi-card", json={"payer_slug": "pay-none", "payment_methods": methods, "allocations": {"a": 500}})
    assert missing.status_code == 404

    assert client.post(f"/v1/payments/multi-card/{uuid.uuid4()}/process").status_code == 404
    assert client.post("/v1/payments/multi-card/xyz/process").status_code == 400


def test_allocation_webhooks_complete_payment(client: TestClient, post_event):
    created = _create(client, total_amount=1000, num_payers=1, payment_mode="self-pay")
    slug = _slug(created["links"][0])
    payment = client.post(
        "/v1/payments/multi-card",
        json={
            "payer_slug": slug,
            "payment_methods": [
                {"id": "a", "name": "Visa 4242", "provider": "stripe"},
                {"id": "b", "name": "Amex 0005", "provider": "stripe"},
            ],
            "allocations": {"a": 250, "b": 750},
        },
    ).json()

    outcomes = []
    for i, allocation in enumerate(payment["allocations"]):
        metadata = {"allocationId": allocation["allocation_id"], "paymentId": payment["payment_id"]}
        response = post_event("payment_intent.succeeded", {"id": f"pi_{i}", "amount": allocation["amount"], "metadata": metadata})
        outcomes.append(response.json()["outcome"])

    assert outcomes == ["processed", "processed"]
    assert client.get(f"/v1/payers/{slug}").json()["status"] == "PAID"
    assert client.get(f"/v1/collections/{created['collection_id']}").json()["status"] == "COMPLETED"


def test_payouts(client: TestClient, db: Session, post_event):
    created = _create(client, total_amount=1000, num_payers=2, creator_email="host@example.com")
    paid = created["links"][0]
    post_event(
        "checkout.session.completed",
        {
            "id": "cs_1",
            "amount_total": 500,
            "metadata": {"payerId": paid["payer_id"], "collectionId": created["collection_id"]},
        },
    )
    creator = db.query(User).filter(User.email == "host@example.com").one()

    response = client.get("/v1/payouts", params={"user_id": str(creator.id)})
    assert response.status_code == 200
    payouts = response.json()["payouts"]
    assert len(payouts) == 1
    assert payouts[0]["payer_id"] == paid["payer_id"]
    assert payouts[0]["amount"] == 500
    assert payouts[0]["status"] == "PENDING"

    recorded = client.post("/v1/payouts", json={"payer_id": paid["payer_id"], "payout_method": "bank_transfer"})
    assert recorded.status_code == 200
    assert recorded.json()["payout_reference"].startswith("PAYOUT-")

    unknown = client.post("/v1/payouts", json={"payer_id": str(uuid.uuid4()), "payout_method": "upi"})
    assert unknown.status_code == 404
    assert client.get("/v1/payouts", params={"user_id": "someone"}).status_code == 400
