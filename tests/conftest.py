"""Shared fixtures for the reconciliation backend tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from p2p_recon.core.models.enums import OrderSource, Side
from p2p_recon.core.models.order import Order
from p2p_recon.core.recon.merge import OrderMergeEngine
from p2p_recon.core.recon.overrides import LocalOverrideStore
from p2p_recon.data.storage.memory import InMemoryOrderStore


@pytest.fixture
def make_order() -> Callable[..., Order]:
    def factory(oid: str = "1", **kwargs: Any) -> Order:
        data: dict[str, Any] = {
            "id": oid,
            "order_id": oid,
            "side": Side.BUY,
            "status": "Order finished",
            "price": "7.21",
            "amount": "721.00",
            "buyer_real_name": f"Buyer {oid}",
            "seller_real_name": f"Seller {oid}",
            "target_nickname": f"nick-{oid}",
            "create_date": "2024-01-05T12:00:00.000Z",
            "source": OrderSource.API,
        }
        data.update(kwargs)
        return Order(**data)

    return factory


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def overrides() -> LocalOverrideStore:
    return LocalOverrideStore()


@pytest.fixture
def engine(store: InMemoryOrderStore, overrides: LocalOverrideStore) -> OrderMergeEngine:
    return OrderMergeEngine(store=store, overrides=overrides)
