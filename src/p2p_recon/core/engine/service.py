# src/p2p_recon/core/engine/service.py
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Mapping, Optional

from p2p_recon.config import (
    AppConfig,
    ConfigCredentialsProvider,
    ConfigIdentityProvider,
    CredentialsProvider,
    IdentityProvider,
)
from p2p_recon.core.errors import ConfigurationError, TransportError
from p2p_recon.core.models.order import FilterCriteria, ImportResult, Order, OrdersPage, SyncResult
from p2p_recon.core.recon.merge import OrderMergeEngine
from p2p_recon.core.recon.overrides import LocalOverrideStore
from p2p_recon.core.recon.sync import SyncCoordinator
from p2p_recon.data.storage.base import OrderStore
from p2p_recon.data.storage.memory import InMemoryOrderStore
from p2p_recon.exchanges.bybit.rest import BybitP2PREST
from p2p_recon.ingest.csv_import import CsvImportAdapter

if TYPE_CHECKING:
    from psycopg_pool import ConnectionPool

log = logging.getLogger("p2p_recon.service")


class ReconciliationService:
    """
    Operations exposed to the dashboard / API layer.

    Read paths (fetch_orders, fetch_order_detail) degrade to demo or stored
    data; write paths (update_reconciliation, run_sync, import_csv) surface errors.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        engine: OrderMergeEngine,
        coordinator: SyncCoordinator,
        importer: CsvImportAdapter,
        credentials: CredentialsProvider,
        identity: IdentityProvider,
        pool: Optional[ConnectionPool] = None,
    ):
        self.config = config
        self.engine = engine
        self.coordinator = coordinator
        self.importer = importer
        self.credentials = credentials
        self.identity = identity
        # pool opened by build_service, closed by close()
        self._owned_pool = pool

        self._client_lock = threading.Lock()
        self._client_stale = coordinator.client is None
        self._unsubscribe = config.subscribe(self._on_config_changed)

    # ------------------------------------------------------------------
    # client lifecycle
    # ------------------------------------------------------------------

    def _on_config_changed(self, topic: str, config: AppConfig) -> None:
        if topic == "sync":
            s = config.sync
            self.coordinator.pages = max(1, s.pages)
            self.coordinator.page_size = max(1, s.page_size)
            self.coordinator.detail_workers = max(1, s.detail_workers)
            return
        if topic in ("credentials", "bybit"):
            with self._client_lock:
                self._client_stale = True
            log.info("Config changed (%s), Bybit client will be rebuilt", topic)

    def _build_client(self) -> Optional[BybitP2PREST]:
        creds = self.credentials.get_credentials()
        if not creds.use_api:
            return None
        b = self.config.bybit
        try:
            return BybitP2PREST(
                creds.api_key,
                creds.api_secret,
                testnet=b.testnet,
                timeout=b.timeout_sec,
                max_retries=b.max_retries,
                retry_delay=b.retry_delay_sec,
            )
        except ConfigurationError as e:
            log.warning("Bybit client not available: %s", e)
            return None

    def _ensure_client(self) -> Optional[BybitP2PREST]:
        with self._client_lock:
            if self._client_stale:
                self.coordinator.client = self._build_client()
                self._client_stale = False
            return self.coordinator.client

    @property
    def api_ready(self) -> bool:
        return self._ensure_client() is not None

    def _seed_demo(self, order_id: str) -> None:
        # demo mode: a fresh ledger gets the demo set before an id lookup
        if self.engine.store.get_order(order_id) is None:
            self.coordinator.run(tolerant=True)

    def close(self) -> None:
        self._unsubscribe()
        if self._owned_pool is not None:
            self._owned_pool.close()
            self._owned_pool = None
            log.info("PostgreSQL pool closed")

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    def fetch_orders(self, filters: FilterCriteria | Mapping[str, Any] | None = None) -> OrdersPage:
        criteria = filters if isinstance(filters, FilterCriteria) else FilterCriteria.from_params(filters)
        if self.config.sync.refresh_on_fetch:
            self._ensure_client()
            self.coordinator.run(tolerant=True)
        return self.engine.query(criteria)

    def fetch_order_detail(self, order_id: str) -> Order:
        if self._ensure_client() is not None:
            try:
                return self.coordinator.fetch_detail(order_id)
            except TransportError as e:
                log.warning("Detail fetch for %s failed, using stored copy | %s", order_id, e)
        else:
            self._seed_demo(order_id)
        return self.engine.get(order_id)

    def update_reconciliation(
        self,
        order_id: str,
        *,
        reconciled: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> Order:
        if self._ensure_client() is None:
            self._seed_demo(order_id)
        return self.engine.update_reconciliation(
            order_id,
            reconciled=reconciled,
            notes=notes,
            actor=self.identity.current_identity(),
        )

    def run_sync(self, *, tolerant: bool = False) -> SyncResult:
        self._ensure_client()
        return self.coordinator.run(tolerant=tolerant)

    def import_csv(self, file_content: str) -> ImportResult:
        return self.importer.import_text(file_content)


# =============================================================================
# wiring
# =============================================================================

def build_service(
    config: AppConfig,
    *,
    store: OrderStore | None = None,
    overrides: LocalOverrideStore | None = None,
    client: BybitP2PREST | None = None,
) -> ReconciliationService:
    """
    Default wiring: PostgreSQL ledger when PG_DSN is configured, in-memory otherwise.
    Persisted reconciliation state is loaded into the override store.
    """
    pool = None
    if store is None:
        if config.pg_dsn:
            from p2p_recon.data.storage.postgres.pool import create_pool
            from p2p_recon.data.storage.postgres.storage import PostgreSQLOrderStore

            pool = create_pool(config.pg_dsn)
            store = PostgreSQLOrderStore(pool)
            log.info("Using PostgreSQL order store")
        else:
            store = InMemoryOrderStore()
            log.info("Using in-memory order store")

    if overrides is None:
        overrides = LocalOverrideStore()
    overrides.load(store.load_overrides())

    engine = OrderMergeEngine(store=store, overrides=overrides)
    s = config.sync
    coordinator = SyncCoordinator(
        engine=engine,
        client=client,
        pages=s.pages,
        page_size=s.page_size,
        detail_workers=s.detail_workers,
    )

    return ReconciliationService(
        config=config,
        engine=engine,
        coordinator=coordinator,
        importer=CsvImportAdapter(engine),
        credentials=ConfigCredentialsProvider(config),
        identity=ConfigIdentityProvider(config),
        pool=pool,
    )

