# src/p2p_recon/data/storage/postgres/storage.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from p2p_recon.core.models.enums import OrderSource
from p2p_recon.core.models.order import Order, ReconciliationOverride
from p2p_recon.data.storage.base import OrderStore

logger = logging.getLogger(__name__)

DDL_PATH = Path(__file__).resolve().parent / "ddl.sql"

_COLUMNS = (
    "order_id", "id", "side", "status",
    "token_id", "price", "amount", "notify_token_quantity",
    "target_nickname", "seller_real_name", "buyer_real_name",
    "create_date",
    "reconciled", "reconciled_by", "reconciled_at", "notes",
    "source",
)


def _row_params(o: Order) -> dict[str, Any]:
    d = o.to_dict()
    return {c: d[c] for c in _COLUMNS}


class PostgreSQLOrderStore(OrderStore):

    """
    PostgreSQL order ledger (table p2p_orders, see ddl.sql).

    Upserts replace business columns only; reconciliation columns are written
    on insert and afterwards exclusively by save_reconciliation().
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    # ======================================================================
    # HELPERS
    # ======================================================================

    def _exec_many(self, query: str, rows: list[dict]) -> int:
        if not rows:
            return 0
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(query, rows)
            conn.commit()
        return len(rows)

    def _exec(self, query: str, params: tuple | dict = ()) -> int:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                n = cur.rowcount
            conn.commit()
        return n

    def _fetch_all(self, query: str, params: tuple = ()) -> list[dict]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return list(cur.fetchall())

    def exec_ddl(self, ddl_sql: str | None = None) -> None:
        sql = ddl_sql if ddl_sql is not None else DDL_PATH.read_text(encoding="utf-8")
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()
        logger.info("DDL applied")

    # ======================================================================
    # ORDERS
    # ======================================================================

    def upsert_orders(self, orders: Iterable[Order]) -> int:
        query = """
        INSERT INTO p2p_orders (
            order_id, id, side, status,
            token_id, price, amount, notify_token_quantity,
            target_nickname, seller_real_name, buyer_real_name,
            create_date,
            reconciled, reconciled_by, reconciled_at, notes,
            source, updated_at
        )
        VALUES (
            %(order_id)s, %(id)s, %(side)s, %(status)s,
            %(token_id)s, %(price)s, %(amount)s, %(notify_token_quantity)s,
            %(target_nickname)s, %(seller_real_name)s, %(buyer_real_name)s,
            %(create_date)s,
            %(reconciled)s, %(reconciled_by)s, %(reconciled_at)s, %(notes)s,
            %(source)s, NOW()
        )
        ON CONFLICT (order_id)
        DO UPDATE SET
            side = EXCLUDED.side,
            status = EXCLUDED.status,
            token_id = EXCLUDED.token_id,
            price = EXCLUDED.price,
            amount = EXCLUDED.amount,
            notify_token_quantity = EXCLUDED.notify_token_quantity,
            target_nickname = EXCLUDED.target_nickname,
            seller_real_name = EXCLUDED.seller_real_name,
            buyer_real_name = EXCLUDED.buyer_real_name,
            create_date = EXCLUDED.create_date,
            source = EXCLUDED.source,
            updated_at = NOW();
        """
        return self._exec_many(query, [_row_params(o) for o in orders])

    def get_order(self, order_id: str) -> Order | None:
        rows = self._fetch_all("SELECT * FROM p2p_orders WHERE id = %s", (order_id,))
        return Order.from_dict(rows[0]) if rows else None

    def list_orders(self) -> list[Order]:
        rows = self._fetch_all("SELECT * FROM p2p_orders ORDER BY create_date DESC")
        return [Order.from_dict(r) for r in rows]

    def save_reconciliation(self, order: Order) -> None:
        query = """
        UPDATE p2p_orders
        SET reconciled = %(reconciled)s,
            reconciled_by = %(reconciled_by)s,
            reconciled_at = %(reconciled_at)s,
            notes = %(notes)s,
            updated_at = NOW()
        WHERE id = %(id)s;
        """
        ov = order.reconciliation()
        self._exec(query, {
            "id": order.id,
            "reconciled": ov.reconciled,
            "reconciled_by": ov.reconciled_by,
            "reconciled_at": ov.reconciled_at,
            "notes": ov.notes,
        })

    # ======================================================================
    # HOUSEKEEPING
    # ======================================================================

    def load_overrides(self) -> dict[str, ReconciliationOverride]:
        rows = self._fetch_all(
            """
            SELECT id, reconciled, reconciled_by, reconciled_at, notes
            FROM p2p_orders
            WHERE reconciled OR notes IS NOT NULL
            """
        )
        return {
            r["id"]: ReconciliationOverride(
                reconciled=bool(r["reconciled"]),
                reconciled_by=r["reconciled_by"] if r["reconciled"] else None,
                reconciled_at=r["reconciled_at"] if r["reconciled"] else None,
                notes=r["notes"],
            )
            for r in rows
        }

    def discard_source(self, source: OrderSource) -> int:
        return self._exec("DELETE FROM p2p_orders WHERE source = %s", (source.value,))
