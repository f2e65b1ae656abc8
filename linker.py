import logging
import os
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from categorizer import apply_inferred_category
from errors import InvalidTransition, LinkConflict, OrderNotFound
from matcher import match_orders
from order_models import Match, MatchResult, UnlinkSnapshot

logger = logging.getLogger(__name__)

TRANSACTION_SCAN_LIMIT = int(os.getenv("AMAZON_TRANSACTION_SCAN_LIMIT", "10000"))


def apply_matches(repo, matches: List[Match]) -> int:
    """Persist accepted matches and categorize confidently matched transactions.

    Each match is written in its own savepoint; a failing match is logged
    and left out of the returned count.  Re-applying a link that already
    exists writes nothing.
    """
    linked = 0
    for match in matches:
        try:
            with repo.session.begin_nested():
                changed = repo.link_order_to_transaction(match.order_id, match.transaction_id, match.confidence)
                order = repo.get_order(match.order_id)
                if changed and order is not None and order.items:
                    apply_inferred_category(repo, match, order)
        except (SQLAlchemyError, LookupError) as exc:
            logger.error("Failed to link order %s to %s: %s", match.order_id, match.transaction_id, exc)
            continue
        linked += 1
    return linked


def auto_match_orders(repo, limit: int = TRANSACTION_SCAN_LIMIT) -> MatchResult:
    """Match every unmatched order against the most recent transactions."""
    orders = repo.get_unmatched_orders()
    transactions = repo.get_transactions(limit)

    matches, unmatched = match_orders(orders, transactions)
    linked = apply_matches(repo, matches)
    # a matching pass supersedes any unlink waiting to be undone
    repo.clear_undo()
    repo.commit()

    logger.info("Matched %d of %d orders (%d unmatched)", linked, len(orders), len(unmatched))
    return MatchResult(
        matched=linked,
        unmatched=len(unmatched),
        matches=matches,
        failed=len(matches) - linked,
    )


def unlink(repo, order_id: str) -> UnlinkSnapshot:
    """Clear an order's link, returning what it pointed at so it can be restored."""
    order = repo.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if not order.matched_transaction_id:
        raise InvalidTransition(order_id, "unmatched", "unlink")

    snapshot = UnlinkSnapshot(
        order_id=order_id,
        transaction_id=order.matched_transaction_id,
        confidence=order.match_confidence,
        verified=order.match_verified,
    )
    repo.unlink_order(order_id)
    return snapshot


def relink(repo, order_id: str, transaction_id: str, confidence: int, verified: bool = False):
    order = repo.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if order.matched_transaction_id:
        raise LinkConflict(order_id, order.matched_transaction_id)
    repo.link_order_to_transaction(order_id, transaction_id, confidence)
    repo.set_match_verified(order_id, verified)
