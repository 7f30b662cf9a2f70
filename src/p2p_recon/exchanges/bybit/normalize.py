# src/p2p_recon/exchanges/bybit/normalize.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from p2p_recon.core.models.enums import OrderSource, Side
from p2p_recon.core.models.order import Order, to_iso, utc_now

STATUS_MAP: dict[int, str] = {
    5: "Waiting for chain",
    10: "Waiting for buyer to pay",
    20: "Waiting for seller to release",
    30: "Appealing",
    40: "Order canceled",
    50: "Order finished",
    60: "Paying (online)",
    70: "Pay failed (online)",
    80: "Exception canceled (hotswap)",
    90: "Waiting for buyer to select tokenId",
    100: "Objectioning",
    110: "Waiting for user to raise objection",
}


def ts_ms_to_iso(ts_ms: Any) -> str:
    """Millisecond epoch (int or numeric string) -> ISO UTC. Missing/garbage -> now."""
    try:
        ms = int(str(ts_ms).strip())
        return to_iso(datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc))
    except (TypeError, ValueError, OverflowError, OSError):
        return to_iso(utc_now())


def status_label(code: Any) -> str:
    if code is None or code == "":
        code = -1
    try:
        key = int(code)
    except (TypeError, ValueError):
        return f"Unknown ({code})"
    return STATUS_MAP.get(key, f"Unknown ({key})")


def side_from_code(code: Any) -> Side:
    # Bybit: 0 = buy, 1 = sell
    try:
        return Side.BUY if int(code) == 0 else Side.SELL
    except (TypeError, ValueError):
        return Side.SELL


def _text(raw: dict, key: str) -> str:
    v = raw.get(key)
    return "" if v is None else str(v)


def norm_p2p_order(raw: dict) -> Order:
    """
    Bybit P2P order (list item or order-detail result) -> canonical Order.

    Reconciliation fields are always left at their defaults here.
    """
    oid = _text(raw, "id")
    return Order(
        id=oid,
        order_id=oid,
        side=side_from_code(raw.get("side")),
        status=status_label(raw.get("status")),
        token_id=_text(raw, "tokenId"),
        price=_text(raw, "price"),
        amount=_text(raw, "amount"),
        notify_token_quantity=_text(raw, "notifyTokenQuantity"),
        target_nickname=_text(raw, "targetNickName"),
        seller_real_name=_text(raw, "sellerRealName"),
        buyer_real_name=_text(raw, "buyerRealName"),
        create_date=ts_ms_to_iso(raw.get("createDate")),
        source=OrderSource.API,
    )
