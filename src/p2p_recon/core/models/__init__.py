# src/p2p_recon/core/models/__init__.py
from .enums import OrderSource, Side, SyncState
from .order import (
    FilterCriteria,
    ImportResult,
    Order,
    OrdersPage,
    ReconciliationOverride,
    SyncResult,
)

__all__ = [
    "FilterCriteria",
    "ImportResult",
    "Order",
    "OrderSource",
    "OrdersPage",
    "ReconciliationOverride",
    "Side",
    "SyncResult",
    "SyncState",
]
