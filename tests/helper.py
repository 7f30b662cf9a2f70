"""Test doubles for the Bybit client and raw payload builders."""

from __future__ import annotations

from typing import Any

from p2p_recon.core.errors import TransportError


class FakeBybit:
    """Duck-typed stand-in for BybitP2PREST."""

    def __init__(
        self,
        items: list[dict] | None = None,
        *,
        details: dict[str, dict] | None = None,
        failing_details: set[str] | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.items = list(items or [])
        self.details = dict(details or {})
        self.failing_details = set(failing_details or ())
        self.list_error = list_error
        self.list_calls: list[tuple[int, int]] = []
        self.detail_calls: list[str] = []

    def orders(self, *, page: int = 1, size: int = 20) -> dict:
        self.list_calls.append((page, size))
        if self.list_error is not None:
            raise self.list_error
        start = (page - 1) * size
        return {"items": self.items[start:start + size], "count": len(self.items)}

    def order_detail(self, order_id: str) -> dict:
        self.detail_calls.append(order_id)
        if order_id in self.failing_details:
            raise TransportError(f"detail {order_id} failed")
        if order_id in self.details:
            return self.details[order_id]
        for it in self.items:
            if it.get("id") == order_id:
                return it
        raise TransportError(f"unknown order {order_id}")


def raw_order(oid: str, **overrides: Any) -> dict:
    raw = {
        "id": oid,
        "side": 0,
        "status": 50,
        "tokenId": "USDT",
        "price": "7.21",
        "amount": "721.00",
        "notifyTokenQuantity": "100",
        "targetNickName": f"nick-{oid}",
        "sellerRealName": f"Seller {oid}",
        "buyerRealName": f"Buyer {oid}",
        "createDate": "1704412800000",  # 2024-01-05T00:00:00Z
    }
    raw.update(overrides)
    return raw


