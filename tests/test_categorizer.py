from datetime import date

import pytest

from categorizer import (
    AMAZON_EXPENSE_CATEGORIES,
    CATEGORY_INFERENCE_CONFIDENCE,
    apply_inferred_category,
    build_rules,
    ensure_amazon_categories,
    infer_category,
    map_amazon_category,
    primary_category,
)
from conftest import make_order
from order_models import Match


@pytest.mark.parametrize(
    "amazon_category, expected",
    [
        ("Electronics", "Shopping > Electronics"),
        ("Books", "Shopping > Books"),
        ("Grocery & Gourmet Food", "Groceries"),
        ("Automotive", "Transportation > Auto Parts"),
        ("Home", "Shopping > Home & Kitchen"),
        ("Consumer Electronics", "Shopping > Electronics"),
        ("Handmade", "Shopping"),
        ("books", "Shopping"),
    ],
)
def test_map_amazon_category(amazon_category, expected):
    assert map_amazon_category(amazon_category) == expected


def test_exact_rules_take_precedence_over_substring():
    rules = build_rules([("Toys", "Shopping > Toys"), ("Toys & Games", "Entertainment")])
    assert map_amazon_category("Toys & Games", rules) == "Entertainment"
    assert map_amazon_category("Toys for Dogs", rules) == "Shopping > Toys"
    assert map_amazon_category("Garden", rules) == "Shopping"


def test_all_electronics_order():
    order = make_order(categories=("Electronics", "Electronics"))
    assert infer_category(order) == "Shopping > Electronics"


def test_unrecognized_category_defaults_to_shopping():
    assert infer_category(make_order(categories=("Collectible Coins",))) == "Shopping"


def test_primary_category_most_frequent():
    order = make_order(categories=("Books", "Pet Supplies", "Pet Supplies"))
    assert primary_category(order) == "Pet Supplies"


def test_primary_category_tie_keeps_first_seen():
    order = make_order(categories=("Toys & Games", "Books", "Books", "Toys & Games"))
    assert primary_category(order) == "Toys & Games"


def test_no_item_categories():
    order = make_order(categories=("", ""))
    assert primary_category(order) is None
    assert infer_category(order) is None


class TestApplyInferredCategory:
    def _setup(self, repo, add_transaction, **tx_kwargs):
        add_transaction("tx1", date(2024, 1, 11), "-45.99", **tx_kwargs)
        order = make_order()
        repo.upsert_order(order)
        repo.add_items(order.order_id, order.items)
        repo.commit()
        return order

    def test_writes_category_with_fixed_confidence(self, repo, add_transaction):
        order = self._setup(repo, add_transaction)
        match = Match(order.order_id, "tx1", 80, "")
        assert apply_inferred_category(repo, match, order) == "Shopping > Books"
        tx = repo.get_transaction("tx1")
        assert tx.category == "Shopping > Books"
        assert tx.confidence == CATEGORY_INFERENCE_CONFIDENCE
        assert tx.verified is False

    def test_low_confidence_match_leaves_category(self, repo, add_transaction):
        order = self._setup(repo, add_transaction, category="Uncategorized")
        match = Match(order.order_id, "tx1", 79, "")
        assert apply_inferred_category(repo, match, order) is None
        assert repo.get_transaction("tx1").category == "Uncategorized"

    def test_verified_category_is_not_overwritten(self, repo, add_transaction):
        order = self._setup(repo, add_transaction, category="Gifts", confidence=100, verified=True)
        match = Match(order.order_id, "tx1", 95, "")
        assert apply_inferred_category(repo, match, order) is None
        tx = repo.get_transaction("tx1")
        assert (tx.category, tx.confidence, tx.verified) == ("Gifts", 100, True)


def test_ensure_amazon_categories_is_idempotent(repo):
    assert ensure_amazon_categories(repo) == len(AMAZON_EXPENSE_CATEGORIES)
    repo.commit()
    assert ensure_amazon_categories(repo) == 0
    assert "Shopping > Books" in repo.list_categories()
