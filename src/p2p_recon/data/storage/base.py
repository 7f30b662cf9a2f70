# src/p2p_recon/data/storage/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from p2p_recon.core.models.enums import OrderSource
from p2p_recon.core.models.order import Order, ReconciliationOverride


class OrderStore(ABC):
    """
    Persisted ledger of canonical orders.

    upsert_orders() replaces business fields only: for ids already present the
    stored reconciliation fields survive, new ids keep their own.
    """

    @abstractmethod
    def upsert_orders(self, orders: Iterable[Order]) -> int: ...

    @abstractmethod
    def get_order(self, order_id: str) -> Order | None: ...

    @abstractmethod
    def list_orders(self) -> list[Order]: ...

    @abstractmethod
    def save_reconciliation(self, order: Order) -> None: ...

    # ------------------------------------------------------------------
    # housekeeping
    # ------------------------------------------------------------------

    @abstractmethod
    def load_overrides(self) -> dict[str, ReconciliationOverride]:
        """
        Reconciliation state worth restoring on startup:
        reconciled orders and orders carrying notes.
        """

    @abstractmethod
    def discard_source(self, source: OrderSource) -> int: ...
