# src/p2p_recon/core/recon/merge.py
from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Callable, Iterable, Optional, Sequence

from p2p_recon.core.errors import NotFoundError
from p2p_recon.core.models.enums import OrderSource
from p2p_recon.core.models.order import FilterCriteria, Order, OrdersPage
from p2p_recon.core.recon.overrides import LocalOverrideStore
from p2p_recon.data.storage.base import OrderStore

log = logging.getLogger(__name__)

Predicate = Callable[[Order], bool]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ----------------------------------------------------------------------
# predicates
# ----------------------------------------------------------------------

def day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def day_end(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


def _search(term: str) -> Predicate:
    needle = term.lower()

    def pred(o: Order) -> bool:
        return any(
            needle in (v or "").lower()
            for v in (o.order_id, o.buyer_real_name, o.seller_real_name, o.target_nickname)
        )

    return pred


def _created_on_or_after(bound: datetime) -> Predicate:
    # orders with an unparsable create_date never satisfy a date bound
    def pred(o: Order) -> bool:
        ts = o.created_at
        return ts is not None and ts >= bound

    return pred


def _created_on_or_before(bound: datetime) -> Predicate:
    def pred(o: Order) -> bool:
        ts = o.created_at
        return ts is not None and ts <= bound

    return pred


def build_predicates(criteria: FilterCriteria) -> list[Predicate]:
    """
    One independent predicate per constrained field.
    Order-independent: the result is an AND over the list.
    """
    preds: list[Predicate] = []

    if criteria.search:
        preds.append(_search(criteria.search))

    if criteria.side is not None:
        side = criteria.side
        preds.append(lambda o: o.side == side)

    if criteria.status is not None:
        status = criteria.status
        preds.append(lambda o: o.status == status)

    if criteria.reconciled is not None:
        want = criteria.reconciled
        preds.append(lambda o: bool(o.reconciled) is want)

    if criteria.start_date is not None:
        preds.append(_created_on_or_after(day_start(criteria.start_date)))

    if criteria.end_date is not None:
        preds.append(_created_on_or_before(day_end(criteria.end_date)))

    return preds


def filter_orders(orders: Iterable[Order], predicates: Sequence[Predicate]) -> list[Order]:
    return [o for o in orders if all(p(o) for p in predicates)]


def paginate(orders: Sequence[Order], *, page: int, per_page: int) -> OrdersPage:
    """Slice an already filtered sequence. total/pages describe the filtered set."""
    start = (page - 1) * per_page
    return OrdersPage.build(
        list(orders[start:start + per_page]),
        total=len(orders),
        page=page,
        per_page=per_page,
    )


def _newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: o.created_at or _EPOCH, reverse=True)


# ----------------------------------------------------------------------
# engine
# ----------------------------------------------------------------------

class OrderMergeEngine:
    """
    Merges freshly produced orders (API / CSV / demo) with local reconciliation
    overrides, keeps the ledger up to date and serves filtered, paginated views.
    """

    def __init__(self, *, store: OrderStore, overrides: LocalOverrideStore):
        self.store = store
        self.overrides = overrides

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def ingest(self, orders: Iterable[Order]) -> list[Order]:
        merged = self.overrides.apply_all(orders)
        if merged:
            self.store.upsert_orders(merged)
        log.debug("ingested %d orders", len(merged))
        return merged

    def update_reconciliation(
        self,
        order_id: str,
        *,
        reconciled: Optional[bool] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Order:
        current = self.store.get_order(order_id)
        if current is None:
            raise NotFoundError(order_id)

        ov = self.overrides.set(
            order_id,
            reconciled=reconciled,
            notes=notes,
            actor=actor,
            baseline=current.reconciliation(),
        )
        updated = current.with_reconciliation(ov)
        self.store.save_reconciliation(updated)

        log.info(
            "Order %s reconciliation updated: reconciled=%s by=%s",
            order_id, updated.reconciled, updated.reconciled_by,
        )
        return updated

    def discard_source(self, source: OrderSource) -> int:
        n = self.store.discard_source(source)
        if n:
            log.info("Discarded %d %s orders from ledger", n, source.value)
        return n

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, order_id: str) -> Order:
        o = self.store.get_order(order_id)
        if o is None:
            raise NotFoundError(order_id)
        return self.overrides.apply(o)

    def merged_orders(self) -> list[Order]:
        return self.overrides.apply_all(self.store.list_orders())

    def query(self, criteria: FilterCriteria) -> OrdersPage:
        matched = filter_orders(self.merged_orders(), build_predicates(criteria))
        return paginate(_newest_first(matched), page=criteria.page, per_page=criteria.per_page)
