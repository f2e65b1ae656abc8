"""
amazon_sync.py
--------------

Command line entry point for the Amazon reconciliation job.  Imports an
order-history export, matches unmatched orders against bank transactions
and seeds the expense categories the matches may assign.

Usage:

    python amazon_sync.py import path/to/Retail.OrderHistory.csv [--no-match] [--archive]
    python amazon_sync.py auto-match
    python amazon_sync.py reset

Run one job at a time; the matching pass assumes nothing else is linking
or unlinking orders while it runs.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from categorizer import ensure_amazon_categories
from database import SessionLocal, init_db
from errors import ReconciliationError
from linker import auto_match_orders
from order_import import import_orders
from repository import AmazonRepository
from storage import load_export, save_export

logger = logging.getLogger(__name__)


def run_import(repo: AmazonRepository, path: str, match: bool = True, archive: bool = False) -> int:
    text = load_export(path)
    result = import_orders(repo, text)
    print(
        f"Imported {result.imported} new, updated {result.updated} of {result.total} orders "
        f"({result.failed} failed, {result.skipped_rows} rows skipped)"
    )
    if archive:
        print(f"Archived export to {save_export(Path(path).name, text)}")
    if match:
        run_auto_match(repo)
    return 0


def run_auto_match(repo: AmazonRepository) -> int:
    ensure_amazon_categories(repo)
    repo.commit()
    result = auto_match_orders(repo)
    print(f"Matched {result.matched} orders, {result.unmatched} still unmatched")
    for m in result.matches:
        print(f"  {m.order_id} -> {m.transaction_id} ({m.confidence}%): {m.reason}")
    return 0


def run_reset(repo: AmazonRepository) -> int:
    count = repo.reset_all_matchings()
    repo.clear_undo()
    repo.commit()
    print(f"Reset {count} Amazon order matchings")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Reconcile Amazon orders with bank transactions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log skipped rows and per-match detail")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import an Amazon order-history CSV")
    imp.add_argument("path", help="Local path, or key of an archived export when S3_BUCKET is set")
    imp.add_argument("--no-match", action="store_true", help="Skip the matching pass after import")
    imp.add_argument("--archive", action="store_true", help="Keep a copy of the export in storage")

    sub.add_parser("auto-match", help="Match unmatched orders to transactions")
    sub.add_parser("reset", help="Unlink every matched order")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_db()
    db = SessionLocal()
    repo = AmazonRepository(db)
    try:
        if args.command == "import":
            return run_import(repo, args.path, match=not args.no_match, archive=args.archive)
        if args.command == "auto-match":
            return run_auto_match(repo)
        return run_reset(repo)
    except ReconciliationError as exc:
        logger.error(str(exc))
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
