# src/p2p_recon/core/recon/fixtures.py
from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Optional

from p2p_recon.core.models.enums import OrderSource, Side
from p2p_recon.core.models.order import Order, to_iso, utc_now
from p2p_recon.exchanges.bybit.normalize import STATUS_MAP

DEMO_SEED = 20240105
DEMO_COUNT = 20

_DEMO_STATUSES = (STATUS_MAP[50], STATUS_MAP[10], STATUS_MAP[20], STATUS_MAP[40])


def demo_orders(
    *,
    count: int = DEMO_COUNT,
    now: Optional[datetime] = None,
    seed: int = DEMO_SEED,
) -> list[Order]:
    """
    Deterministic synthetic order set used in demo/offline mode.

    Same seed and `now` give the same orders. The first five are dated
    today; ids are stable so repeated fallbacks overwrite, never accumulate.
    """
    rnd = random.Random(seed)
    now = now or utc_now()

    out: list[Order] = []
    for i in range(count):
        days_ago = 0 if i < 5 else rnd.randint(1, 29)
        oid = f"ORD-{100000 + i}"
        out.append(Order(
            id=oid,
            order_id=oid,
            side=Side.BUY if i % 2 == 0 else Side.SELL,
            status=rnd.choice(_DEMO_STATUSES),
            token_id="USDT",
            price=f"{rnd.uniform(80, 110):.2f}",
            amount=f"{rnd.uniform(50, 5000):.2f}",
            notify_token_quantity=f"{rnd.uniform(1, 50):.2f}",
            target_nickname=f"user{i}",
            seller_real_name=f"Seller {i}",
            buyer_real_name=f"Buyer {i}",
            create_date=to_iso(now - timedelta(days=days_ago, minutes=i)),
            source=OrderSource.DEMO,
        ))
    return out
