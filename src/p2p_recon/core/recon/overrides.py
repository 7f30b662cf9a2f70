# src/p2p_recon/core/recon/overrides.py
from __future__ import annotations

import logging
import threading
from typing import Iterable, Mapping, Optional

from p2p_recon.core.models.order import Order, ReconciliationOverride, to_iso, utc_now

log = logging.getLogger(__name__)


class LocalOverrideStore:
    """
    Reconciliation state keyed by order id.

    Lives independently of how an order was last fetched. When merged into a
    fresh order only the reconciliation fields are replaced; business fields
    always come from the fresh copy, so a sync can never erase a human decision.
    """

    def __init__(self, initial: Mapping[str, ReconciliationOverride] | None = None):
        self._lock = threading.Lock()
        self._items: dict[str, ReconciliationOverride] = dict(initial or {})

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, order_id: str) -> Optional[ReconciliationOverride]:
        with self._lock:
            return self._items.get(order_id)

    def load(self, overrides: Mapping[str, ReconciliationOverride]) -> int:
        """Seed from persisted state. Entries already held in memory win."""
        n = 0
        with self._lock:
            for oid, ov in overrides.items():
                if oid not in self._items:
                    self._items[oid] = ov
                    n += 1
        if n:
            log.info("Loaded %d reconciliation overrides", n)
        return n

    def set(
        self,
        order_id: str,
        *,
        reconciled: Optional[bool] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
        baseline: Optional[ReconciliationOverride] = None,
    ) -> ReconciliationOverride:
        """
        Update the override for `order_id`.

        reconciled=True on an unreconciled order stamps actor + now,
        reconciled=False clears both stamps, None leaves the flag as is.
        notes=None leaves notes as is.
        """
        with self._lock:
            cur = self._items.get(order_id) or baseline or ReconciliationOverride()

            flag = cur.reconciled
            by = cur.reconciled_by
            at = cur.reconciled_at

            if reconciled is True and not cur.reconciled:
                # full precision: the stamp must never precede the call
                flag, by, at = True, actor, to_iso(utc_now(), timespec="microseconds")
            elif reconciled is False:
                flag, by, at = False, None, None

            new = ReconciliationOverride(
                reconciled=flag,
                reconciled_by=by,
                reconciled_at=at,
                notes=cur.notes if notes is None else notes,
            )
            self._items[order_id] = new

        log.debug("override %s -> reconciled=%s by=%s", order_id, new.reconciled, new.reconciled_by)
        return new

    def apply(self, order: Order) -> Order:
        ov = self.get(order.id)
        return order if ov is None else order.with_reconciliation(ov)

    def apply_all(self, orders: Iterable[Order]) -> list[Order]:
        with self._lock:
            snapshot = dict(self._items)
        out: list[Order] = []
        for o in orders:
            ov = snapshot.get(o.id)
            out.append(o if ov is None else o.with_reconciliation(ov))
        return out
