from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    transactions: Dict[str, int]
    rejections: Dict[str, int]
    reconciliations: Dict[str, int]
    notifications: Dict[str, Dict[str, int]]
    alerts: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "transactions": dict(self.transactions),
            "rejections": dict(self.rejections),
            "reconciliations": dict(self.reconciliations),
            "notifications": {key: dict(value) for key, value in self.notifications.items()},
            "alerts": dict(self.alerts),
        }


class LedgerObservabilityStore:
    """Counters for ledger writes, rejections, reconciliations, and alertable anomalies."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transactions: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._reconciliations: Dict[str, int] = defaultdict(int)
        self._notifications_sent: Dict[str, int] = defaultdict(int)
        self._notifications_failed: Dict[str, int] = defaultdict(int)
        self._alerts: Dict[str, int] = defaultdict(int)

    def record_transaction(self, transaction_type: str, *, cashback_cents: int = 0) -> None:
        with self._lock:
            self._transactions[transaction_type] += 1
            self._transactions["cashback_cents"] += max(cashback_cents, 0)

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self._rejections[code] += 1

    def record_reconciliation(self, outcome: str) -> None:
        with self._lock:
            self._reconciliations[outcome] += 1

    def record_notification(self, kind: str, *, success: bool) -> None:
        with self._lock:
            if success:
                self._notifications_sent[kind] += 1
            else:
                self._notifications_failed[kind] += 1

    def record_alert(self, name: str) -> None:
        with self._lock:
            self._alerts[name] += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                transactions=dict(self._transactions),
                rejections=dict(self._rejections),
                reconciliations=dict(self._reconciliations),
                notifications={
                    "sent": dict(self._notifications_sent),
                    "failed": dict(self._notifications_failed),
                },
                alerts=dict(self._alerts),
            )

    def reset(self) -> None:
        with self._lock:
            self._transactions.clear()
            self._rejections.clear()
            self._reconciliations.clear()
            self._notifications_sent.clear()
            self._notifications_failed.clear()
            self._alerts.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
