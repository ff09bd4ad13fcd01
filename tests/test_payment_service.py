from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from cardledger_api.models.card import Card
from cardledger_api.models.purchase import PaymentMethodEnum
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.models.webhook_event import WebhookEvent
from cardledger_api.observability.payments import get_payment_store
from cardledger_api.services.ledger import InvalidStateError, PurchaseService, ReconciliationStatus
from cardledger_api.services.payments.payment_service import PaymentService
from cardledger_api.services.payments.session_store import PaymentSessionStore


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        self.values.pop(key, None)


class FakeStripeService:
    currency = "usd"

    def __init__(self, *, intent_status: str = "succeeded") -> None:
        self.intent_status = intent_status
        self.created: list[dict] = []

    async def create_payment_intent(self, *, amount_cents, payment_link_id, description=None, metadata=None):
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append(
            {
                "id": intent_id,
                "amount_cents": amount_cents,
                "payment_link_id": payment_link_id,
                "metadata": metadata,
            }
        )
        return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret")

    async def retrieve_payment_intent(self, payment_intent_id):
        return SimpleNamespace(id=payment_intent_id, status=self.intent_status)


def _succeeded_event(event_id: str, payment_link_id) -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": "pi_test_1",
                "amount_received": 5_000,
                "metadata": {"paymentLinkId": str(payment_link_id)},
            }
        },
    }


async def _stage_qr(session_factory, world):
    async with session_factory() as session:
        return await PurchaseService(session).create_purchase(
            actor=world.cashier,
            amount_cents=5_000,
            category=TransactionCategoryEnum.PURCHASE,
            payment_method=PaymentMethodEnum.QR_PAYMENT,
            card_uid=world.card_uid,
        )


async def _balance(session_factory, world) -> int:
    async with session_factory() as session:
        card = (await session.execute(select(Card).where(Card.card_uid == world.card_uid))).scalar_one()
        return card.balance_cents


@pytest.mark.asyncio
async def test_payment_session_is_created_once_per_token(session_factory, world) -> None:
    staged = await _stage_qr(session_factory, world)
    stripe_service = FakeStripeService()
    redis = FakeRedis()
    store = PaymentSessionStore(redis_client=redis, key_prefix="test")

    async with session_factory() as session:
        service = PaymentService(session, stripe_service=stripe_service, session_store=store)
        first = await service.get_or_create_payment_session(staged.payment_link.token)
        second = await service.get_or_create_payment_session(staged.payment_link.token)

    assert first == second
    assert first.client_secret == "pi_test_1_secret"
    assert len(stripe_service.created) == 1
    assert stripe_service.created[0]["payment_link_id"] == str(staged.payment_link.id)
    assert stripe_service.created[0]["metadata"]["purchaseId"] == str(staged.purchase.id)

    key = f"test:{staged.payment_link.token}"
    assert key in redis.values
    assert 0 < redis.ttls[key] <= 24 * 3600
    assert get_payment_store().snapshot().intent_totals == {"created": 1}


@pytest.mark.asyncio
async def test_webhook_confirms_purchase_and_ignores_redelivery(session_factory, world) -> None:
    staged = await _stage_qr(session_factory, world)
    event = _succeeded_event("evt_1", staged.payment_link.id)

    async with session_factory() as session:
        first = await PaymentService(session, stripe_service=FakeStripeService()).process_stripe_webhook_event(event)
    async with session_factory() as session:
        second = await PaymentService(session, stripe_service=FakeStripeService()).process_stripe_webhook_event(event)

    assert first.status == ReconciliationStatus.APPLIED.value
    assert first.payment_link_id == str(staged.payment_link.id)
    assert second.status == "duplicate"
    assert await _balance(session_factory, world) == 150

    async with session_factory() as session:
        recorded = (await session.execute(select(func.count()).select_from(WebhookEvent))).scalar_one()
    assert recorded == 1


@pytest.mark.asyncio
async def test_distinct_deliveries_for_same_link_apply_once(session_factory, world) -> None:
    staged = await _stage_qr(session_factory, world)

    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService())
        first = await service.process_stripe_webhook_event(_succeeded_event("evt_a", staged.payment_link.id))
    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService())
        second = await service.process_stripe_webhook_event(_succeeded_event("evt_b", staged.payment_link.id))

    assert first.status == "applied"
    assert second.status == "already_processed"
    assert await _balance(session_factory, world) == 150


@pytest.mark.asyncio
async def test_unrelated_and_unknown_webhooks_have_no_effect(session_factory, world) -> None:
    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService())
        ignored = await service.process_stripe_webhook_event(
            {"id": "evt_refund", "type": "charge.refunded", "data": {"object": {}}}
        )
        missing_reference = await service.process_stripe_webhook_event(
            {"id": "evt_plain", "type": "payment_intent.succeeded", "data": {"object": {"metadata": {}}}}
        )
        unknown_link = await service.process_stripe_webhook_event(
            _succeeded_event("evt_unknown", "3f1c2d7e-9a51-4b8e-a0c4-6a2d1f0e9b77")
        )

    assert ignored.status == "ignored"
    assert missing_reference.status == "ignored"
    assert unknown_link.status == "not_found"
    assert await _balance(session_factory, world) == 0


@pytest.mark.asyncio
async def test_payment_page_confirmation_requires_processor_success(session_factory, world) -> None:
    staged = await _stage_qr(session_factory, world)
    token = staged.payment_link.token
    redis = FakeRedis()
    store = PaymentSessionStore(redis_client=redis, key_prefix="test")

    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService(), session_store=store)
        with pytest.raises(InvalidStateError):
            await service.confirm_paid_link(token)

    async with session_factory() as session:
        service = PaymentService(
            session,
            stripe_service=FakeStripeService(intent_status="requires_payment_method"),
            session_store=store,
        )
        await service.get_or_create_payment_session(token)
        with pytest.raises(InvalidStateError) as excinfo:
            await service.confirm_paid_link(token)
    assert excinfo.value.context["intent_status"] == "requires_payment_method"
    assert await _balance(session_factory, world) == 0

    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService(), session_store=store)
        outcome = await service.confirm_paid_link(token)
    async with session_factory() as session:
        service = PaymentService(session, stripe_service=FakeStripeService(), session_store=store)
        repeat = await service.confirm_paid_link(token)

    assert outcome.status == ReconciliationStatus.APPLIED
    assert repeat.status == ReconciliationStatus.ALREADY_PROCESSED
    assert await _balance(session_factory, world) == 150
    assert f"test:{token}" not in redis.values


@pytest.mark.asyncio
async def test_simultaneous_redelivery_is_acknowledged_as_duplicate(session_factory, world, monkeypatch) -> None:
    staged = await _stage_qr(session_factory, world)
    event = _succeeded_event("evt_race", staged.payment_link.id)

    async with session_factory() as session:
        first = await PaymentService(session, stripe_service=FakeStripeService()).process_stripe_webhook_event(event)

    async def not_seen_yet(self, provider_reference):
        return False

    # The second delivery checked for duplicates before the first one recorded the event.
    monkeypatch.setattr(PaymentService, "_is_duplicate_webhook", not_seen_yet)
    async with session_factory() as session:
        second = await PaymentService(session, stripe_service=FakeStripeService()).process_stripe_webhook_event(event)

    assert first.status == "applied"
    assert second.status == "duplicate"
    assert second.payment_link_id == str(staged.payment_link.id)
    assert await _balance(session_factory, world) == 150

    async with session_factory() as session:
        recorded = (await session.execute(select(func.count()).select_from(WebhookEvent))).scalar_one()
    assert recorded == 1
