# src/p2p_recon/ingest/csv_import.py
from __future__ import annotations

import csv
import io
import logging
from typing import Optional

from p2p_recon.core.errors import OrderImportError
from p2p_recon.core.models.enums import OrderSource, Side
from p2p_recon.core.models.order import ImportResult, Order, parse_iso, to_iso, utc_now
from p2p_recon.core.recon.merge import OrderMergeEngine

log = logging.getLogger(__name__)

HEADER_MAP: dict[str, str] = {
    "Order ID": "order_id",
    "Side": "side",
    "Status": "status",
    "Token ID": "token_id",
    "Price": "price",
    "Notify Token Quantity": "notify_token_quantity",
    "Target Nickname": "target_nickname",
    "Create Date": "create_date",
    "Seller Real Name": "seller_real_name",
    "Buyer Real Name": "buyer_real_name",
    "Amount": "amount",
}

_SIDES = {"buy": Side.BUY, "0": Side.BUY, "sell": Side.SELL, "1": Side.SELL}


def _parse_side(value: str) -> Optional[Side]:
    return _SIDES.get(value.strip().lower())


def _normalize_date(value: str) -> str:
    """Parsable -> ISO UTC; unparsable -> kept verbatim; empty -> now."""
    s = value.strip()
    if not s:
        return to_iso(utc_now())
    dt = parse_iso(s)
    return to_iso(dt) if dt is not None else s


class CsvImportAdapter:
    """
    Uploaded CSV text -> canonical orders -> merge pipeline.

    Columns are matched by exact header text; unknown columns are ignored.
    """

    def __init__(self, engine: OrderMergeEngine | None = None):
        self.engine = engine

    def parse(self, text: str) -> list[Order]:
        if not text or not text.strip():
            raise OrderImportError("CSV file is empty")

        reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
        header: list[str] | None = None
        orders: list[Order] = []
        skipped = 0

        for lineno, row in enumerate(reader, start=1):
            if not row or all(not c.strip() for c in row):
                continue

            if header is None:
                header = [c.strip() for c in row]
                continue

            rec: dict[str, str] = {}
            for name, value in zip(header, row):
                field = HEADER_MAP.get(name)
                if field:
                    rec[field] = value.strip()

            order = self._to_order(rec)
            if order is None:
                skipped += 1
                log.warning("CSV line %d skipped: missing order id or invalid side", lineno)
                continue
            orders.append(order)

        if not orders:
            raise OrderImportError("No valid orders found in CSV")

        log.info("Parsed %d orders from CSV (skipped=%d)", len(orders), skipped)
        return orders

    def import_text(self, text: str) -> ImportResult:
        if self.engine is None:
            raise RuntimeError("CsvImportAdapter.import_text requires an engine")

        orders = self.parse(text)
        merged = self.engine.ingest(orders)
        log.info("Imported %d orders from CSV", len(merged))
        return ImportResult(message="Successfully imported orders", imported_count=len(merged))

    @staticmethod
    def _to_order(rec: dict[str, str]) -> Optional[Order]:
        oid = rec.get("order_id", "")
        if not oid:
            return None

        side = _parse_side(rec.get("side", ""))
        if side is None:
            return None

        return Order(
            id=oid,
            order_id=oid,
            side=side,
            status=rec.get("status", ""),
            token_id=rec.get("token_id", ""),
            price=rec.get("price", ""),
            amount=rec.get("amount", ""),
            notify_token_quantity=rec.get("notify_token_quantity", ""),
            target_nickname=rec.get("target_nickname", ""),
            seller_real_name=rec.get("seller_real_name", ""),
            buyer_real_name=rec.get("buyer_real_name", ""),
            create_date=_normalize_date(rec.get("create_date", "")),
            source=OrderSource.CSV,
        )
