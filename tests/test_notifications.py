from uuid import uuid4

import pytest

from cardledger_api.services.ledger import LedgerEvent, LedgerEventDispatcher, LedgerEventKind
from cardledger_api.services.notifications import NotificationService
from cardledger_api.services.notifications.backend import InMemoryEmailBackend
from cardledger_api.services.notifications.templates import format_cents


def _event(kind: LedgerEventKind, **overrides) -> LedgerEvent:
    values = {
        "kind": kind,
        "tenant_id": uuid4(),
        "customer_id": uuid4(),
        "card_uid": "CARD-0001-AAAA",
        "amount_cents": 10_000,
        "cashback_cents": 300,
        "balance_after_cents": 1_250,
        "transaction_id": uuid4(),
        "recipient_email": "holder@example.com",
        "recipient_name": "Dana",
    }
    values.update(overrides)
    return LedgerEvent(**values)


def test_format_cents() -> None:
    assert format_cents(0) == "$0.00"
    assert format_cents(1_250) == "$12.50"
    assert format_cents(-75) == "-$0.75"


@pytest.mark.asyncio
async def test_cashback_earned_email_is_rendered() -> None:
    backend = InMemoryEmailBackend()
    service = NotificationService(backend=backend)

    await service.handle_ledger_event(_event(LedgerEventKind.CASHBACK_EARNED))

    assert len(backend.sent_messages) == 1
    message = backend.sent_messages[0]
    assert message["To"] == "holder@example.com"
    assert message["Subject"] == "You earned $3.00 cashback"
    assert "Hi Dana," in service.sent_events[0].body_text
    assert "Your card balance is now $12.50." in service.sent_events[0].body_text
    assert service.sent_events[0].event_type == "cashback_earned"


@pytest.mark.asyncio
async def test_tier_change_email_carries_tiers() -> None:
    backend = InMemoryEmailBackend()
    service = NotificationService(backend=backend)

    await service.handle_ledger_event(
        _event(LedgerEventKind.TIER_CHANGED, tier="GOLD", previous_tier="SILVER")
    )

    sent = service.sent_events[0]
    assert sent.subject == "You've reached Gold status"
    assert "from Silver to Gold" in sent.body_text
    assert sent.metadata["tier"] == "GOLD"
    assert sent.metadata["previous_tier"] == "SILVER"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kind", "subject"),
    [
        (LedgerEventKind.CASHBACK_REDEEMED, "You redeemed $100.00"),
        (LedgerEventKind.BALANCE_ADJUSTED, "Your card balance was adjusted"),
        (LedgerEventKind.STORE_CREDIT_ADDED, "$100.00 store credit added"),
    ],
)
async def test_balance_events_are_rendered(kind, subject) -> None:
    service = NotificationService(backend=InMemoryEmailBackend())

    await service.handle_ledger_event(_event(kind))

    assert [event.subject for event in service.sent_events] == [subject]


@pytest.mark.asyncio
async def test_events_without_recipient_or_cashback_are_skipped() -> None:
    backend = InMemoryEmailBackend()
    service = NotificationService(backend=backend)

    await service.handle_ledger_event(_event(LedgerEventKind.CASHBACK_EARNED, cashback_cents=0))
    await service.handle_ledger_event(_event(LedgerEventKind.CASHBACK_REDEEMED, recipient_email=None))

    assert backend.sent_messages == []


@pytest.mark.asyncio
async def test_dispatcher_delivers_to_notification_service() -> None:
    service = NotificationService(backend=InMemoryEmailBackend())
    dispatcher = LedgerEventDispatcher(service)

    delivered = await dispatcher.dispatch(
        [_event(LedgerEventKind.CASHBACK_EARNED), _event(LedgerEventKind.BALANCE_ADJUSTED)]
    )

    assert delivered == 2
    assert [event.event_type for event in service.sent_events] == ["cashback_earned", "balance_adjusted"]
