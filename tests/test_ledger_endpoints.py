from __future__ import annotations

import json

import pytest
import stripe
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from cardledger_api.api.dependencies.services import get_ledger_dispatcher, get_stripe_service
from cardledger_api.core.settings import settings
from cardledger_api.models.purchase import PaymentLink
from cardledger_api.observability.ledger import get_ledger_store
from cardledger_api.services.ledger import LedgerEventDispatcher
from cardledger_api.services.notifications import InMemoryEmailBackend, NotificationService


class WebhookStripeService:
    currency = "usd"

    async def construct_webhook_event(self, payload: bytes, signature: str):
        if signature != "valid":
            raise stripe.SignatureVerificationError("No signatures found", signature)
        return json.loads(payload)


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(staff_id) -> dict[str, str]:
    return {"X-Staff-User": str(staff_id)}


@pytest.mark.asyncio
async def test_earn_endpoint_returns_transaction_and_sends_email(app_with_db, world) -> None:
    app, _ = app_with_db
    notifications = NotificationService(backend=InMemoryEmailBackend())
    app.dependency_overrides[get_ledger_dispatcher] = lambda: LedgerEventDispatcher(notifications)

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/transactions/earn",
            json={"cardUid": world.card_uid, "amountCents": 10_000, "storeId": str(world.store_id)},
            headers=_as(world.cashier_id),
        )

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "earn"
    assert body["cashbackCents"] == 300
    assert body["balanceAfterCents"] == 300
    assert body["rateBps"] == 300
    assert body["tier"] == "GOLD"
    assert body["previousTier"] == "SILVER"
    assert body["tierChanged"] is True
    assert [event.event_type for event in notifications.sent_events] == ["cashback_earned", "tier_changed"]


@pytest.mark.asyncio
async def test_transaction_endpoints_map_ledger_errors(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        missing_header = await client.post(
            "/api/v1/transactions/earn",
            json={"cardUid": world.card_uid, "amountCents": 100, "storeId": str(world.store_id)},
        )
        cross_store = await client.post(
            "/api/v1/transactions/earn",
            json={"cardUid": world.card_uid, "amountCents": 100, "storeId": str(world.second_store_id)},
            headers=_as(world.second_cashier_id),
        )
        overdraw = await client.post(
            "/api/v1/transactions/redeem",
            json={"cardUid": world.card_uid, "amountCents": 100, "storeId": str(world.store_id)},
            headers=_as(world.cashier_id),
        )
        unknown_card = await client.post(
            "/api/v1/transactions/adjust",
            json={"cardUid": "CARD-UNKNOWN", "amountCents": 100, "storeId": str(world.store_id)},
            headers=_as(world.cashier_id),
        )

    assert missing_header.status_code == 401
    assert cross_store.status_code == 403
    assert cross_store.json()["detail"]["code"] == "policy_violation"
    assert overdraw.status_code == 422
    assert overdraw.json()["detail"]["code"] == "insufficient_funds"
    assert unknown_card.status_code == 404


@pytest.mark.asyncio
async def test_cash_purchase_endpoint_confirms_immediately(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/purchases",
            json={"amountCents": 4_000, "category": "repair", "paymentMethod": "cash", "cardUid": world.card_uid},
            headers=_as(world.cashier_id),
        )

    assert response.status_code == 201
    body = response.json()
    assert body["paymentToken"] is None
    assert body["confirmation"]["status"] == "applied"
    assert body["confirmation"]["cashbackCents"] == 200
    assert body["confirmation"]["balanceAfterCents"] == 200


@pytest.mark.asyncio
async def test_purchase_request_rejects_card_and_customer_together(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/purchases",
            json={
                "amountCents": 1_000,
                "cardUid": world.card_uid,
                "customerId": str(world.customer_id),
            },
            headers=_as(world.cashier_id),
        )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_payment_link_lifecycle(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        created = await client.post(
            "/api/v1/purchases",
            json={"amountCents": 5_000, "paymentMethod": "qr_payment", "cardUid": world.card_uid},
            headers=_as(world.cashier_id),
        )
        assert created.status_code == 201
        purchase = created.json()
        token = purchase["paymentToken"]
        assert purchase["paymentUrl"].endswith(f"/payment/{token}")
        assert purchase["paymentStatus"] == "pending"
        assert purchase["cashbackCents"] == 150

        link = await client.get(f"/api/v1/payment-links/{token}")
        assert link.status_code == 200
        assert link.json()["purchaseId"] == purchase["id"]
        assert link.json()["amountCents"] == 5_000
        assert link.json()["kind"] == "regular"

        confirmed = await client.post(
            f"/api/v1/purchases/{purchase['id']}/confirm",
            headers=_as(world.cashier_id),
        )
        repeated = await client.post(
            f"/api/v1/purchases/{purchase['id']}/confirm",
            headers=_as(world.cashier_id),
        )
        used = await client.get(f"/api/v1/payment-links/{token}")
        unknown = await client.get("/api/v1/payment-links/not-a-token")

    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "applied"
    assert confirmed.json()["paymentStatus"] == "completed"
    assert repeated.json()["status"] == "already_processed"
    assert repeated.json()["transactionId"] is None
    assert used.status_code == 410
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_stripe_webhook_endpoint_confirms_payment_link(app_with_db, world) -> None:
    app, session_factory = app_with_db
    app.dependency_overrides[get_stripe_service] = WebhookStripeService

    async with _client(app) as client:
        created = await client.post(
            "/api/v1/purchases/store-credit",
            json={"cardUid": world.card_uid, "amountCents": 2_500, "storeId": str(world.store_id)},
            headers=_as(world.cashier_id),
        )
        token = created.json()["paymentToken"]
        link = await client.get(f"/api/v1/payment-links/{token}")
        assert link.json()["kind"] == "store_credit"

        async with session_factory() as session:
            link_id = (
                await session.execute(select(PaymentLink.id).where(PaymentLink.token == token))
            ).scalar_one()

        event = {
            "id": "evt_store_credit",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "metadata": {"paymentLinkId": str(link_id)}}},
        }
        delivered = await client.post(
            "/api/v1/payments/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "valid"},
        )
        redelivered = await client.post(
            "/api/v1/payments/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "valid"},
        )
        forged = await client.post(
            "/api/v1/payments/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "forged"},
        )

    assert delivered.status_code == 200
    assert delivered.json()["status"] == "applied"
    assert redelivered.status_code == 200
    assert redelivered.json()["status"] == "duplicate"
    assert forged.status_code == 400


@pytest.mark.asyncio
async def test_tier_progress_endpoint(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        await client.post(
            "/api/v1/transactions/earn",
            json={"cardUid": world.card_uid, "amountCents": 2_500, "storeId": str(world.store_id)},
            headers=_as(world.cashier_id),
        )
        response = await client.get(
            f"/api/v1/customers/{world.customer_id}/tier-progress",
            headers=_as(world.cashier_id),
        )

    assert response.status_code == 200
    body = response.json()
    assert body["currentTier"] == "SILVER"
    assert body["currentSpendCents"] == 2_500
    assert body["nextTier"] == "GOLD"
    assert body["remainingToNextCents"] == 7_500
    assert body["progressPercent"] == 25.0


@pytest.mark.asyncio
async def test_default_rules_endpoint_requires_tenant_admin(app_with_db, world) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        forbidden = await client.post("/api/v1/rules/defaults", headers=_as(world.cashier_id))
        created = await client.post("/api/v1/rules/defaults", headers=_as(world.admin_id))
        again = await client.post("/api/v1/rules/defaults", headers=_as(world.admin_id))

    assert forbidden.status_code == 403
    assert created.json() == {"created": 1}
    assert again.json() == {"created": 0}


@pytest.mark.asyncio
async def test_observability_requires_service_key(app_with_db, world) -> None:
    app, _ = app_with_db
    previous_key = settings.service_api_key
    settings.service_api_key = "ops-key"

    try:
        async with _client(app) as client:
            await client.post(
                "/api/v1/transactions/earn",
                json={"cardUid": world.card_uid, "amountCents": 1_000, "storeId": str(world.store_id)},
                headers=_as(world.cashier_id),
            )
            denied = await client.get("/api/v1/observability/ledger")
            allowed = await client.get("/api/v1/observability/ledger", headers={"X-API-Key": "ops-key"})
            payments = await client.get("/api/v1/observability/payments", headers={"X-API-Key": "ops-key"})
    finally:
        settings.service_api_key = previous_key

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json() == get_ledger_store().snapshot().as_dict()
    assert payments.status_code == 200


@pytest.mark.asyncio
async def test_readiness_reports_database_and_reconciliation(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        healthy = await client.get("/api/v1/readyz")
        get_ledger_store().record_alert("reconciliation_card_missing")
        degraded = await client.get("/api/v1/readyz")

    assert healthy.json()["status"] == "ready"
    assert degraded.json()["status"] == "degraded"
    assert degraded.json()["components"]["reconciliation"]["status"] == "degraded"
