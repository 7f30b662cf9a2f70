# src/p2p_recon/cli/orders.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from p2p_recon.config import load_config
from p2p_recon.core.engine.service import ReconciliationService, build_service
from p2p_recon.core.errors import ReconError

log = logging.getLogger("p2p_recon.cli")


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _cmd_sync(svc: ReconciliationService, args: argparse.Namespace) -> int:
    res = svc.run_sync(tolerant=bool(args.tolerant))
    _print(res.to_dict())
    return 0


def _cmd_list(svc: ReconciliationService, args: argparse.Namespace) -> int:
    page = svc.fetch_orders({
        "search": args.search,
        "side": args.side,
        "status": args.status,
        "reconciled": args.reconciled,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "page": args.page,
        "per_page": args.per_page,
    })
    _print(page.to_dict())
    return 0


def _cmd_show(svc: ReconciliationService, args: argparse.Namespace) -> int:
    _print(svc.fetch_order_detail(args.order_id).to_dict())
    return 0


def _cmd_reconcile(svc: ReconciliationService, args: argparse.Namespace) -> int:
    reconciled: Optional[bool] = None
    if args.undo:
        reconciled = False
    elif not args.notes_only:
        reconciled = True
    order = svc.update_reconciliation(args.order_id, reconciled=reconciled, notes=args.notes)
    _print(order.to_dict())
    return 0


def _cmd_import(svc: ReconciliationService, args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8-sig")
    _print(svc.import_csv(text).to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="p2p-recon", description="P2P order reconciliation backend")
    ap.add_argument("--config", default=None, help="YAML config (default: config/recon.yaml if present)")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="run one sync pass against Bybit")
    p.add_argument("--tolerant", action="store_true", help="fall back to demo data instead of failing")
    p.set_defaults(func=_cmd_sync)

    p = sub.add_parser("list", help="filtered, paginated order list")
    p.add_argument("--search")
    p.add_argument("--side", choices=["BUY", "SELL", "all"])
    p.add_argument("--status")
    p.add_argument("--reconciled", choices=["true", "false", "all"])
    p.add_argument("--start-date", dest="start_date", help="YYYY-MM-DD, inclusive")
    p.add_argument("--end-date", dest="end_date", help="YYYY-MM-DD, inclusive")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--per-page", dest="per_page", type=int, default=10)
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("show", help="order detail")
    p.add_argument("order_id")
    p.set_defaults(func=_cmd_show)

    p = sub.add_parser("reconcile", help="mark an order reconciled / update notes")
    p.add_argument("order_id")
    p.add_argument("--notes")
    g = p.add_mutually_exclusive_group()
    g.add_argument("--undo", action="store_true", help="mark as NOT reconciled")
    g.add_argument("--notes-only", dest="notes_only", action="store_true", help="only update notes")
    p.set_defaults(func=_cmd_reconcile)

    p = sub.add_parser("import", help="import orders from a CSV file")
    p.add_argument("file")
    p.set_defaults(func=_cmd_import)

    return ap


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    cfg = load_config(args.config)
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    svc = build_service(cfg)
    try:
        return int(args.func(svc, args))
    except (ReconError, ValueError) as e:
        log.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        svc.close()


if __name__ == "__main__":
    sys.exit(main())
