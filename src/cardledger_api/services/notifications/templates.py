"""Plain-text and HTML renderers for ledger notifications."""

from __future__ import annotations

import html
from dataclasses import dataclass

from cardledger_api.services.ledger.events import LedgerEvent


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    return f"{sign}${abs(amount_cents) / 100:.2f}"


def _greeting(name: str | None) -> str:
    return f"Hi {name}," if name else "Hi there,"


def _render(subject: str, greeting: str, lines: list[str]) -> RenderedTemplate:
    text_body = "\n".join([greeting, "", *lines, "", "Thanks for being a member."])
    paragraphs = "\n".join(f"    <p>{html.escape(line)}</p>" for line in lines)
    html_body = f"""<html>
  <body>
    <p>{html.escape(greeting)}</p>
{paragraphs}
    <p>Thanks for being a member.</p>
  </body>
</html>"""
    return RenderedTemplate(subject=subject, text_body=text_body, html_body=html_body)


def render_cashback_earned(event: LedgerEvent) -> RenderedTemplate:
    return _render(
        f"You earned {format_cents(event.cashback_cents)} cashback",
        _greeting(event.recipient_name),
        [
            f"Your purchase of {format_cents(event.amount_cents)} earned {format_cents(event.cashback_cents)} cashback.",
            f"Your card balance is now {format_cents(event.balance_after_cents)}.",
        ],
    )


def render_cashback_redeemed(event: LedgerEvent) -> RenderedTemplate:
    return _render(
        f"You redeemed {format_cents(event.amount_cents)}",
        _greeting(event.recipient_name),
        [
            f"{format_cents(event.amount_cents)} was redeemed from your card.",
            f"Remaining balance: {format_cents(event.balance_after_cents)}.",
        ],
    )


def render_balance_adjusted(event: LedgerEvent) -> RenderedTemplate:
    return _render(
        "Your card balance was adjusted",
        _greeting(event.recipient_name),
        [
            f"Your card balance was adjusted by {format_cents(event.amount_cents)}.",
            f"New balance: {format_cents(event.balance_after_cents)}.",
        ],
    )


def render_store_credit_added(event: LedgerEvent) -> RenderedTemplate:
    return _render(
        f"{format_cents(event.amount_cents)} store credit added",
        _greeting(event.recipient_name),
        [
            f"We received your payment and added {format_cents(event.amount_cents)} to your card.",
            f"New balance: {format_cents(event.balance_after_cents)}.",
        ],
    )


def render_tier_changed(event: LedgerEvent) -> RenderedTemplate:
    tier = (event.tier or "").title()
    return _render(
        f"You've reached {tier} status",
        _greeting(event.recipient_name),
        [
            f"Your membership moved from {(event.previous_tier or '').title()} to {tier}.",
            "Your new cashback rate applies from your next purchase.",
        ],
    )
