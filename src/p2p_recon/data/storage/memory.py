# src/p2p_recon/data/storage/memory.py
from __future__ import annotations

import threading
from typing import Iterable

from p2p_recon.core.models.enums import OrderSource
from p2p_recon.core.models.order import Order, ReconciliationOverride
from p2p_recon.data.storage.base import OrderStore


class InMemoryOrderStore(OrderStore):
    """Process-local ledger; insertion ordered, keyed by Order.id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}

    def upsert_orders(self, orders: Iterable[Order]) -> int:
        n = 0
        with self._lock:
            for o in orders:
                prev = self._orders.get(o.id)
                self._orders[o.id] = o if prev is None else o.with_reconciliation(prev.reconciliation())
                n += 1
        return n

    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def list_orders(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def save_reconciliation(self, order: Order) -> None:
        with self._lock:
            prev = self._orders.get(order.id)
            base = prev if prev is not None else order
            self._orders[order.id] = base.with_reconciliation(order.reconciliation())

    def load_overrides(self) -> dict[str, ReconciliationOverride]:
        with self._lock:
            return {
                oid: o.reconciliation()
                for oid, o in self._orders.items()
                if o.reconciled or o.notes
            }

    def discard_source(self, source: OrderSource) -> int:
        with self._lock:
            drop = [oid for oid, o in self._orders.items() if o.source == source]
            for oid in drop:
                del self._orders[oid]
        return len(drop)
