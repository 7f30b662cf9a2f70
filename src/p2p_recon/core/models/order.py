# src/p2p_recon/core/models/order.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from p2p_recon.core.models.enums import OrderSource, Side, SyncState


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_iso(dt: datetime, timespec: str = "milliseconds") -> str:
    """UTC ISO-8601 with a trailing Z. Milliseconds unless `timespec` says otherwise."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec=timespec).replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.
    Naive values are treated as UTC. Returns None when unparsable.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# fields owned by the operator; everything else is business data
RECONCILIATION_FIELDS = ("reconciled", "reconciled_by", "reconciled_at", "notes")


@dataclass(slots=True, frozen=True)
class ReconciliationOverride:
    reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.reconciled and (self.reconciled_by is not None or self.reconciled_at is not None):
            raise ValueError("unreconciled override cannot carry reconciled_by/reconciled_at")


@dataclass(slots=True)
class Order:
    """
    Canonical, source-independent P2P order.

    Numeric values stay as text exactly as the source delivered them.
    """

    # --- identity ---
    id: str
    order_id: str
    side: Side

    status: str = ""

    # --- business ---
    token_id: str = ""
    price: str = ""
    amount: str = ""
    notify_token_quantity: str = ""

    # --- counterparties ---
    target_nickname: str = ""
    seller_real_name: str = ""
    buyer_real_name: str = ""

    create_date: str = field(default_factory=lambda: to_iso(utc_now()))

    # --- reconciliation ---
    reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[str] = None
    notes: Optional[str] = None

    source: OrderSource = OrderSource.API

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @property
    def created_at(self) -> Optional[datetime]:
        return parse_iso(self.create_date)

    def reconciliation(self) -> ReconciliationOverride:
        return ReconciliationOverride(
            reconciled=self.reconciled,
            reconciled_by=self.reconciled_by if self.reconciled else None,
            reconciled_at=self.reconciled_at if self.reconciled else None,
            notes=self.notes,
        )

    def with_reconciliation(self, override: ReconciliationOverride) -> "Order":
        """Copy with reconciliation fields taken from `override`, business fields untouched."""
        return replace(
            self,
            reconciled=override.reconciled,
            reconciled_by=override.reconciled_by,
            reconciled_at=override.reconciled_at,
            notes=override.notes,
        )

    def to_dict(self) -> dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["side"] = self.side.value
        out["source"] = self.source.value
        return out

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Order":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        side = data.get("side") or Side.BUY
        data["side"] = side if isinstance(side, Side) else Side(str(side).upper())
        src = data.get("source") or OrderSource.API
        data["source"] = src if isinstance(src, OrderSource) else OrderSource(str(src))
        data["reconciled"] = bool(data.get("reconciled") or False)
        for k in ("create_date", "reconciled_at"):
            if isinstance(data.get(k), datetime):
                data[k] = to_iso(data[k])
        return cls(**data)


# ----------------------------------------------------------------------
# query / result types
# ----------------------------------------------------------------------

def _unset(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("", "all")
    return value is None


def _as_date(value: Any, name: str) -> Optional[date]:
    if _unset(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as e:
        raise ValueError(f"invalid {name}: {value!r}") from e


def _as_tristate(value: Any) -> Optional[bool]:
    if _unset(value):
        return None
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s == "true":
        return True
    if s == "false":
        return False
    raise ValueError(f"invalid reconciled filter: {value!r}")


def _as_positive_int(value: Any, default: int, name: str) -> int:
    if _unset(value):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid {name}: {value!r}") from e
    if n < 1:
        raise ValueError(f"{name} must be >= 1, got {n}")
    return n


@dataclass(slots=True, frozen=True)
class FilterCriteria:
    search: Optional[str] = None
    side: Optional[Side] = None
    status: Optional[str] = None
    reconciled: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = 1
    per_page: int = 10

    @classmethod
    def from_params(cls, params: Mapping[str, Any] | None = None) -> "FilterCriteria":
        """
        Build criteria from loosely typed caller input.

        None, "" and "all" all mean "no constraint on this field".
        """
        p = dict(params or {})

        side_raw = p.get("side")
        side: Optional[Side] = None
        if isinstance(side_raw, Side):
            side = side_raw
        elif not _unset(side_raw):
            try:
                side = Side(str(side_raw).strip().upper())
            except ValueError as e:
                raise ValueError(f"invalid side: {side_raw!r}") from e

        search = None if _unset(p.get("search")) else str(p["search"]).strip()
        status = None if _unset(p.get("status")) else str(p["status"])

        return cls(
            search=search or None,
            side=side,
            status=status,
            reconciled=_as_tristate(p.get("reconciled")),
            start_date=_as_date(p.get("start_date"), "start_date"),
            end_date=_as_date(p.get("end_date"), "end_date"),
            page=_as_positive_int(p.get("page"), 1, "page"),
            per_page=_as_positive_int(p.get("per_page"), 10, "per_page"),
        )


@dataclass(slots=True)
class OrdersPage:
    orders: list[Order]
    total: int
    pages: int
    current_page: int

    @classmethod
    def build(cls, orders: list[Order], *, total: int, page: int, per_page: int) -> "OrdersPage":
        return cls(
            orders=orders,
            total=total,
            pages=math.ceil(total / per_page) if per_page else 0,
            current_page=page,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "orders": [o.to_dict() for o in self.orders],
            "total": self.total,
            "pages": self.pages,
            "current_page": self.current_page,
        }


@dataclass(slots=True)
class SyncResult:
    message: str
    new_orders: int
    source: str
    state: SyncState = SyncState.SUCCEEDED
    fallback_used: bool = False
    error: Optional[str] = None
    orders: list[Order] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return self.state == SyncState.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "new_orders": self.new_orders,
            "source": self.source,
            "state": self.state.value,
            "fallback_used": self.fallback_used,
            "error": self.error,
        }


@dataclass(slots=True, frozen=True)
class ImportResult:
    message: str
    imported_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "imported_count": self.imported_count}
