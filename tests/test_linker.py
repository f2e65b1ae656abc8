from datetime import date

import pytest

from conftest import SAMPLE_CSV
from errors import InvalidTransition, LinkConflict, OrderNotFound
from linker import apply_matches, auto_match_orders, relink, unlink
from order_import import import_orders
from order_models import Match


@pytest.fixture
def imported(repo, add_transaction):
    add_transaction("tx1", date(2024, 1, 11), "-45.99", description="AMAZON.COM*AB12CD")
    add_transaction("tx2", date(2024, 1, 11), "-12.00", description="GROCERY OUTLET")
    import_orders(repo, SAMPLE_CSV)
    return repo


def test_auto_match_end_to_end(imported):
    result = auto_match_orders(imported)

    assert result.matched == 1
    assert result.unmatched == 0
    [match] = result.matches
    assert (match.order_id, match.transaction_id, match.confidence) == ("112-3456789", "tx1", 95)

    order = imported.get_order("112-3456789")
    assert order.matched_transaction_id == "tx1"
    assert order.match_confidence == 95
    assert order.match_verified is False

    tx = imported.get_transaction("tx1")
    assert tx.amazon_order_id == "112-3456789"
    assert tx.category == "Shopping > Books"
    assert tx.confidence == 90
    assert tx.verified is False


def test_undated_transaction_does_not_abort_matching(imported, add_transaction):
    add_transaction("tx-undated", None, "-45.99")
    result = auto_match_orders(imported)
    assert result.matches[0].transaction_id == "tx1"


def test_matched_orders_are_not_rematched(imported):
    auto_match_orders(imported)
    again = auto_match_orders(imported)
    assert again.matched == 0
    assert again.matches == []


def test_unmatched_order_reported(repo, add_transaction):
    add_transaction("tx1", date(2024, 2, 20), "-45.99")
    import_orders(repo, SAMPLE_CSV)
    result = auto_match_orders(repo)
    assert (result.matched, result.unmatched) == (0, 1)
    assert repo.get_order("112-3456789").matched_transaction_id is None


def test_full_score_link_is_verified(repo, add_transaction):
    add_transaction("tx1", date(2024, 1, 10), "-45.99")
    import_orders(repo, SAMPLE_CSV)
    result = auto_match_orders(repo)
    assert result.matches[0].confidence == 100
    assert repo.get_order("112-3456789").match_verified is True


def test_reapplying_match_is_noop(imported):
    match = Match("112-3456789", "tx1", 95, "")
    assert apply_matches(imported, [match]) == 1
    imported.commit()
    imported.update_transaction_category("tx1", "Gifts", 40)
    imported.commit()

    assert apply_matches(imported, [match]) == 1
    imported.commit()
    # no relink happened, so the category was not re-inferred
    assert imported.get_transaction("tx1").category == "Gifts"
    assert imported.get_order("112-3456789").match_confidence == 95


def test_failed_match_is_isolated(imported):
    good = Match("112-3456789", "tx1", 95, "")
    bad = Match("112-3456789", "missing-tx", 70, "")
    assert apply_matches(imported, [bad, good]) == 1
    imported.commit()
    assert imported.get_order("112-3456789").matched_transaction_id == "tx1"


def test_unlink_then_relink_restores_state(imported):
    auto_match_orders(imported)
    before = imported.get_order("112-3456789")

    snapshot = unlink(imported, "112-3456789")
    imported.commit()
    assert (snapshot.transaction_id, snapshot.confidence) == ("tx1", 95)
    assert imported.get_order("112-3456789").matched_transaction_id is None
    assert imported.get_transaction("tx1").amazon_order_id is None

    relink(imported, snapshot.order_id, snapshot.transaction_id, snapshot.confidence)
    imported.commit()
    after = imported.get_order("112-3456789")
    assert after.matched_transaction_id == before.matched_transaction_id
    assert after.match_confidence == before.match_confidence
    assert imported.get_transaction("tx1").amazon_order_id == "112-3456789"


def test_relink_refuses_linked_order(imported):
    auto_match_orders(imported)
    with pytest.raises(LinkConflict):
        relink(imported, "112-3456789", "tx2", 70)
    assert imported.get_order("112-3456789").matched_transaction_id == "tx1"


def test_unlink_errors(imported):
    with pytest.raises(OrderNotFound):
        unlink(imported, "nope")
    with pytest.raises(InvalidTransition):
        unlink(imported, "112-3456789")
