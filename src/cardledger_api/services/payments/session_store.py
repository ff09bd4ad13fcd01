"""Redis-backed cache of processor payment sessions keyed by payment-link token."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Optional

from redis.asyncio import Redis

from cardledger_api.core.settings import settings


@dataclass
class PaymentSession:
    """Processor intent details shared by every API instance serving a token."""

    payment_intent_id: str
    client_secret: str
    amount_cents: int


class PaymentSessionStore:
    """Store one processor session per token, expiring with the payment link."""

    def __init__(self, redis_client: Redis | None = None, *, key_prefix: str | None = None) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._prefix = key_prefix or settings.payment_session_key_prefix

    def _key(self, token: str) -> str:
        return f"{self._prefix}:{token}"

    async def get(self, token: str) -> Optional[PaymentSession]:
        raw = await self._redis.get(self._key(token))
        if raw is None:
            return None
        data = json.loads(raw)
        return PaymentSession(
            payment_intent_id=data["payment_intent_id"],
            client_secret=data["client_secret"],
            amount_cents=int(data["amount_cents"]),
        )

    async def put(self, token: str, session: PaymentSession, *, ttl_seconds: int) -> bool:
        """Save the session unless another instance saved one first.

        Returns True when this call created the entry.
        """

        ttl = max(int(ttl_seconds), 1)
        created = await self._redis.set(self._key(token), json.dumps(asdict(session)), ex=ttl, nx=True)
        return bool(created)

    async def discard(self, token: str) -> None:
        await self._redis.delete(self._key(token))


__all__ = ["PaymentSession", "PaymentSessionStore"]
