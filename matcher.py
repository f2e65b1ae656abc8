"""
matcher.py
----------

Score Amazon orders against bank transactions.

Every candidate transaction inside the settlement window earns points from
four independent signals; the best candidate is kept when it reaches
``MIN_MATCH_CONFIDENCE``.

==========================  ====================================  ========
Signal                      Rule                                  Points
==========================  ====================================  ========
Amount                      exact / within tolerance / within 5%  40/35/25
Merchant                    description or merchant has AMAZON    30 or 5
Date proximity              0 / 1 / 2 / 3+ days after the order   20-5
Not already matched         no order linked to the transaction    10
==========================  ====================================  ========

Everything here is a pure function of its inputs.  Within a single batch a
transaction can be the best match for more than one order; only a link
persisted by an earlier run lowers its score.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Tuple

from order_models import Match, Order, Transaction

MIN_MATCH_CONFIDENCE = 60
MATCH_WINDOW_DAYS = 7

AMOUNT_TOLERANCE_FLOOR = Decimal("0.50")
AMOUNT_TOLERANCE_RATE = Decimal("0.01")
PARTIAL_PAYMENT_RATE = Decimal("0.05")

AMAZON_MARKERS = ("amazon", "amzn")


def is_acceptable(score: int) -> bool:
    return score >= MIN_MATCH_CONFIDENCE


def _amount_points(order_amount: Decimal, tx_amount: Decimal) -> Optional[Tuple[int, str]]:
    diff = abs(tx_amount - order_amount)
    tolerance = max(AMOUNT_TOLERANCE_FLOOR, order_amount * AMOUNT_TOLERANCE_RATE)
    if diff == 0:
        return 40, "Exact amount match"
    if diff <= tolerance:
        return 35, "Amount match within tolerance"
    if diff <= order_amount * PARTIAL_PAYMENT_RATE:
        # gift card or points covered part of the order
        return 25, "Partial payment (possible gift card/points)"
    return None


def _mentions_amazon(transaction: Transaction) -> bool:
    text = f"{transaction.description or ''} {transaction.merchant_name or ''}".lower()
    return any(marker in text for marker in AMAZON_MARKERS)


def _proximity_points(days: int) -> Tuple[int, str]:
    if days == 0:
        return 20, "Same day"
    if days == 1:
        return 15, "Next day"
    if days == 2:
        return 10, f"{days} days later"
    return 5, f"{days} days later"


def score_candidate(order: Order, transaction: Transaction) -> Optional[Tuple[int, List[str]]]:
    """Score one transaction against one order.

    Returns ``(score, reasons)``, or None when the transaction falls outside
    the date window or its amount is too far from the order total.
    """
    if transaction.date is None:
        return None
    days = (transaction.date - order.order_date).days
    if days < 0 or days > MATCH_WINDOW_DAYS:
        return None

    amount = _amount_points(abs(Decimal(order.total_amount)), abs(Decimal(transaction.amount)))
    if amount is None:
        return None

    score, reason = amount
    reasons = [reason]

    if _mentions_amazon(transaction):
        score += 30
        reasons.append("Merchant name contains Amazon/AMZN")
    else:
        score += 5

    points, reason = _proximity_points(days)
    score += points
    reasons.append(reason)

    if not transaction.amazon_order_id:
        score += 10
        reasons.append("Transaction not already matched")

    return min(score, 100), reasons


def find_best_match(order: Order, transactions: List[Transaction]) -> Optional[Match]:
    best = None
    best_score = 0
    for transaction in transactions:
        scored = score_candidate(order, transaction)
        if scored is None:
            continue
        score, reasons = scored
        # strictly greater: the first candidate wins a tie
        if score > best_score and is_acceptable(score):
            best_score = score
            best = Match(
                order_id=order.order_id,
                transaction_id=transaction.transaction_id,
                confidence=score,
                reason="; ".join(reasons),
            )
    return best


def match_orders(orders: List[Order], transactions: List[Transaction]) -> Tuple[List[Match], List[Order]]:
    """Find the best transaction for every order.

    Returns the accepted matches and the orders left unmatched.
    """
    snapshot = list(transactions)
    matches: List[Match] = []
    unmatched: List[Order] = []
    for order in orders:
        match = find_best_match(order, snapshot)
        if match is None:
            unmatched.append(order)
        else:
            matches.append(match)
    return matches, unmatched
