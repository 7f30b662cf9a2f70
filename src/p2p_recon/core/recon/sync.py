# src/p2p_recon/core/recon/sync.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from p2p_recon.core.errors import TransportError
from p2p_recon.core.models.enums import OrderSource, SyncState
from p2p_recon.core.models.order import Order, SyncResult
from p2p_recon.core.recon.fixtures import demo_orders
from p2p_recon.core.recon.merge import OrderMergeEngine
from p2p_recon.exchanges.bybit.normalize import norm_p2p_order
from p2p_recon.exchanges.bybit.rest import BybitP2PREST

log = logging.getLogger(__name__)

DemoFactory = Callable[..., list[Order]]


def _as_count(v: Any) -> int:
    """Reported total; anything unusable is 0, so paging stops on an empty page."""
    try:
        return max(0, int(v))
    except (TypeError, ValueError):
        return 0


_TRANSITIONS: dict[SyncState, tuple[SyncState, ...]] = {
    SyncState.IDLE: (SyncState.FETCHING, SyncState.MERGING, SyncState.FAILED),
    SyncState.FETCHING: (SyncState.NORMALIZING, SyncState.FAILED),
    SyncState.NORMALIZING: (SyncState.MERGING, SyncState.FAILED),
    SyncState.MERGING: (SyncState.SUCCEEDED, SyncState.FAILED),
    SyncState.SUCCEEDED: (),
    SyncState.FAILED: (),
}


class _SyncPass:
    """State of one pass. Created per run(), never shared between passes."""

    def __init__(self) -> None:
        self.state = SyncState.IDLE

    def to(self, new: SyncState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal sync transition {self.state.value} -> {new.value}")
        log.debug("[SYNC] %s -> %s", self.state.value, new.value)
        self.state = new


class SyncCoordinator:
    """
    One synchronization pass: fetch -> normalize -> merge.

    Without a client (API disabled / not configured) the pass loads the demo
    dataset and succeeds. Transport failures are either surfaced (tolerant=False)
    or answered with the demo dataset (tolerant=True).
    """

    def __init__(
        self,
        *,
        engine: OrderMergeEngine,
        client: Optional[BybitP2PREST] = None,
        pages: int = 1,
        page_size: int = 20,
        detail_workers: int = 4,
        demo_factory: DemoFactory = demo_orders,
    ):
        self.engine = engine
        self.client = client
        self.pages = max(1, int(pages))
        self.page_size = max(1, int(page_size))
        self.detail_workers = max(1, int(detail_workers))
        self.demo_factory = demo_factory

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        *,
        tolerant: bool = True,
        pages: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> SyncResult:
        sp = _SyncPass()

        if self.client is None:
            log.info("[SYNC] API not configured, using demo dataset")
            return self._load_demo(
                sp,
                source="demo",
                message="API usage is disabled or API key is not configured; showing demo data",
            )

        try:
            sp.to(SyncState.FETCHING)
            raws = self._fetch_raw(
                pages=pages or self.pages,
                size=page_size or self.page_size,
            )

            sp.to(SyncState.NORMALIZING)
            orders = [norm_p2p_order(r) for r in raws]

            sp.to(SyncState.MERGING)
            merged = self.engine.ingest(orders)
            self.engine.discard_source(OrderSource.DEMO)
        except TransportError as e:
            sp.to(SyncState.FAILED)
            if not tolerant:
                log.error("[SYNC] failed: %s", e)
                raise
            return self._fallback(e)

        sp.to(SyncState.SUCCEEDED)
        log.info("[SYNC] synced %d orders from Bybit", len(merged))
        return SyncResult(
            message="Successfully synced orders from Bybit API",
            new_orders=len(merged),
            source="api",
            state=sp.state,
            orders=merged,
        )

    def fetch_detail(self, order_id: str) -> Order:
        """Live detail for one order, normalized and merged. Raises on failure."""
        if self.client is None:
            raise TransportError("API not configured")
        raw = self.client.order_detail(order_id)
        merged = self.engine.ingest([norm_p2p_order(raw)])
        return merged[0]

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _fallback(self, err: Exception) -> SyncResult:
        stored = [o for o in self.engine.merged_orders() if o.source is not OrderSource.DEMO]
        if stored:
            # live or imported data already in the ledger: serve it, never mix demo rows in
            log.warning("[SYNC] Bybit unavailable, serving %d stored orders | %s", len(stored), err)
            res = SyncResult(
                message=f"Bybit API unavailable ({err}); showing stored orders",
                new_orders=0,
                source="fallback",
                orders=stored,
            )
        else:
            log.warning("[SYNC] Bybit unavailable, falling back to demo dataset | %s", err)
            res = self._load_demo(
                _SyncPass(),
                source="fallback",
                message=f"Bybit API unavailable ({err}); showing demo data",
            )
        res.fallback_used = True
        res.error = str(err)
        return res

    def _load_demo(self, sp: _SyncPass, *, source: str, message: str) -> SyncResult:
        sp.to(SyncState.MERGING)
        merged = self.engine.ingest(self.demo_factory())
        sp.to(SyncState.SUCCEEDED)
        return SyncResult(
            message=message,
            new_orders=len(merged),
            source=source,
            state=sp.state,
            orders=merged,
        )

    def _fetch_raw(self, *, pages: int, size: int) -> list[dict]:
        assert self.client is not None
        out: list[dict] = []
        seen = 0

        for page in range(1, pages + 1):
            result = self.client.orders(page=page, size=size)
            if not isinstance(result, dict):
                result = {}
            items = result.get("items")
            items = [it for it in items if isinstance(it, dict)] if isinstance(items, list) else []
            if not items:
                break
            total = _as_count(result.get("count") or result.get("total"))

            out.extend(self._with_details(items))
            seen += len(items)
            if total and seen >= total:
                break

        return out

    def _with_details(self, items: list[dict]) -> list[dict]:
        """
        Replace each list item by its detail record. Details are fetched
        concurrently; one failing detail keeps its list item.
        """
        with ThreadPoolExecutor(max_workers=self.detail_workers, thread_name_prefix="p2p_detail") as pool:
            return list(pool.map(self._detail_or_item, items))

    def _detail_or_item(self, item: dict) -> dict:
        assert self.client is not None
        oid = item.get("id")
        if not oid:
            return item
        try:
            detail = self.client.order_detail(str(oid))
        except TransportError as e:
            log.warning("[SYNC] detail fetch failed for order %s, using list item | %s", oid, e)
            return item
        return detail or item
