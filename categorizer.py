"""
categorizer.py
--------------

Derive an expense category for a bank transaction from the Amazon order
it was matched to.

The item categories Amazon reports ("Electronics", "Home & Kitchen", ...)
are mapped onto the tracker's own category tree through an ordered list of
rules: exact names first, then substring matches in either direction, and
finally the catch-all ``Shopping`` category.

The inferred category is stored with its own confidence
(``CATEGORY_INFERENCE_CONFIDENCE``), unrelated to the match confidence that
linked the order to the transaction.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, List, Optional, Tuple

from order_models import Match, Order

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Shopping"
CATEGORY_INFERENCE_CONFIDENCE = 90
MIN_CATEGORY_MATCH_CONFIDENCE = 80

AMAZON_CATEGORY_MAP: List[Tuple[str, str]] = [
    # Electronics
    ("Electronics", "Shopping > Electronics"),
    ("Computers", "Shopping > Electronics"),
    ("Cell Phones & Accessories", "Shopping > Electronics"),
    ("Camera & Photo", "Shopping > Electronics"),
    # Home & Kitchen
    ("Home & Kitchen", "Shopping > Home & Kitchen"),
    ("Kitchen & Dining", "Shopping > Home & Kitchen"),
    ("Furniture", "Shopping > Home & Kitchen"),
    ("Home Improvement", "Shopping > Home & Kitchen"),
    ("Tools & Home Improvement", "Shopping > Home & Kitchen"),
    # Books & Media
    ("Books", "Shopping > Books"),
    ("Movies & TV", "Entertainment"),
    ("Music", "Entertainment"),
    ("Video Games", "Entertainment"),
    # Clothing
    ("Clothing, Shoes & Jewelry", "Shopping > Clothing"),
    ("Fashion", "Shopping > Clothing"),
    # Health & Beauty
    ("Health & Personal Care", "Healthcare"),
    ("Beauty & Personal Care", "Shopping > Beauty"),
    ("Grocery & Gourmet Food", "Groceries"),
    # Sports & Outdoors
    ("Sports & Outdoors", "Shopping > Sports"),
    ("Outdoor Recreation", "Shopping > Sports"),
    # Toys & Baby
    ("Toys & Games", "Shopping > Toys"),
    ("Baby Products", "Shopping > Baby"),
    # Pets
    ("Pet Supplies", "Shopping > Pets"),
    # Automotive
    ("Automotive", "Transportation > Auto Parts"),
    # Office
    ("Office Products", "Shopping > Office"),
    # Garden
    ("Patio, Lawn & Garden", "Shopping > Garden"),
]

# Expense categories the map can produce, created on import.
AMAZON_EXPENSE_CATEGORIES: List[Tuple[str, Optional[str]]] = [
    ("Shopping", None),
    ("Shopping > Electronics", "Shopping"),
    ("Shopping > Home & Kitchen", "Shopping"),
    ("Shopping > Books", "Shopping"),
    ("Shopping > Clothing", "Shopping"),
    ("Shopping > Beauty", "Shopping"),
    ("Shopping > Sports", "Shopping"),
    ("Shopping > Toys", "Shopping"),
    ("Shopping > Baby", "Shopping"),
    ("Shopping > Pets", "Shopping"),
    ("Shopping > Office", "Shopping"),
    ("Shopping > Garden", "Shopping"),
    ("Transportation > Auto Parts", "Transportation"),
]

Rule = Tuple[Callable[[str], bool], str]


def _exact(key: str) -> Callable[[str], bool]:
    return lambda name: name == key


def _overlaps(key: str) -> Callable[[str], bool]:
    return lambda name: key in name or name in key


def build_rules(mapping: List[Tuple[str, str]]) -> List[Rule]:
    rules: List[Rule] = [(_exact(key), target) for key, target in mapping]
    rules += [(_overlaps(key), target) for key, target in mapping]
    rules.append((lambda name: True, DEFAULT_CATEGORY))
    return rules


CATEGORY_RULES = build_rules(AMAZON_CATEGORY_MAP)


def map_amazon_category(amazon_category: str, rules: List[Rule] = CATEGORY_RULES) -> str:
    for predicate, target in rules:
        if predicate(amazon_category):
            return target
    return DEFAULT_CATEGORY


def primary_category(order: Order) -> Optional[str]:
    """Most common item category in the order; ties go to the first seen."""
    counts = Counter(item.category for item in order.items if item.category)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def infer_category(order: Order) -> Optional[str]:
    category = primary_category(order)
    if category is None:
        return None
    return map_amazon_category(category)


def apply_inferred_category(repo, match: Match, order: Order) -> Optional[str]:
    """Write the inferred category onto the matched transaction.

    Returns the category written, or None when the match is not confident
    enough, the order has no categorised items, or the user has already
    verified the transaction's category.
    """
    if match.confidence < MIN_CATEGORY_MATCH_CONFIDENCE:
        return None

    category = infer_category(order)
    if category is None:
        return None

    transaction = repo.get_transaction(match.transaction_id)
    if transaction is not None and transaction.verified:
        logger.info("Keeping verified category %r on %s", transaction.category, match.transaction_id)
        return None

    repo.update_transaction_category(match.transaction_id, category, CATEGORY_INFERENCE_CONFIDENCE)
    logger.debug("Categorized %s as %s from order %s", match.transaction_id, category, order.order_id)
    return category


def ensure_amazon_categories(repo) -> int:
    """Create any missing Amazon expense categories.  Returns how many were added."""
    added = 0
    for name, parent in AMAZON_EXPENSE_CATEGORIES:
        if repo.add_category(name, parent):
            added += 1
    return added
