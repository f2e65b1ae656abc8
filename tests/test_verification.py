from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from conftest import SAMPLE_CSV
from errors import InvalidTransition, LinkConflict, NothingToUndo, OrderNotFound, WorkflowError
from linker import auto_match_orders
from order_import import import_orders
from verification import (
    MatchState,
    MatchWorkflow,
    unverify_transaction_category,
    verify_transaction_category,
)

ORDER_ID = "112-3456789"


@pytest.fixture
def workflow(repo, add_transaction):
    add_transaction("tx1", date(2024, 1, 11), "-45.99")
    add_transaction("tx2", date(2024, 1, 12), "-45.99", description="CHECKCARD")
    import_orders(repo, SAMPLE_CSV)
    return MatchWorkflow(repo)


@pytest.fixture
def matched(workflow):
    auto_match_orders(workflow.repo)
    return workflow


def _disk_error(*args, **kwargs):
    raise OperationalError("UPDATE", {}, Exception("database is locked"))


def test_imported_order_starts_unmatched(workflow):
    assert workflow.state(ORDER_ID) is MatchState.UNMATCHED


def test_auto_match_moves_to_matched(matched):
    assert matched.state(ORDER_ID) is MatchState.MATCHED


def test_manual_link_at_full_confidence_is_verified(workflow):
    assert workflow.link(ORDER_ID, "tx2") is MatchState.VERIFIED
    assert workflow.repo.get_order(ORDER_ID).match_confidence == 100


def test_manual_link_below_full_confidence_is_matched(workflow):
    assert workflow.link(ORDER_ID, "tx2", confidence=70) is MatchState.MATCHED


def test_manual_link_of_linked_order_conflicts(matched):
    with pytest.raises(LinkConflict):
        matched.link(ORDER_ID, "tx2")
    assert matched.repo.get_order(ORDER_ID).matched_transaction_id == "tx1"


def test_verify_and_unverify(matched):
    assert matched.verify(ORDER_ID) is MatchState.VERIFIED
    assert matched.state(ORDER_ID) is MatchState.VERIFIED

    matched.repo.set_transaction_verified("tx1", True, confidence=100)
    matched.repo.commit()

    assert matched.unverify(ORDER_ID) is MatchState.MATCHED
    assert matched.state(ORDER_ID) is MatchState.MATCHED
    # the transaction is open to automatic recategorization again
    assert matched.repo.get_transaction("tx1").verified is False


def test_invalid_transitions(workflow):
    with pytest.raises(InvalidTransition):
        workflow.verify(ORDER_ID)
    with pytest.raises(InvalidTransition):
        workflow.unverify(ORDER_ID)
    with pytest.raises(InvalidTransition):
        workflow.unlink(ORDER_ID)
    with pytest.raises(OrderNotFound):
        workflow.verify("missing")


def test_unverify_requires_verified(matched):
    with pytest.raises(InvalidTransition):
        matched.unverify(ORDER_ID)


def test_unlink_then_undo_restores_link(matched):
    matched.verify(ORDER_ID)
    before = matched.repo.get_order(ORDER_ID)

    snapshot = matched.unlink(ORDER_ID)
    assert matched.state(ORDER_ID) is MatchState.UNMATCHED
    assert matched.pending_undo == snapshot

    restored = matched.undo()
    assert restored == snapshot
    after = matched.repo.get_order(ORDER_ID)
    assert after.matched_transaction_id == before.matched_transaction_id
    assert after.match_confidence == before.match_confidence == 95
    assert matched.repo.get_transaction("tx1").amazon_order_id == ORDER_ID
    assert matched.pending_undo is None
    assert matched.state(ORDER_ID) is MatchState.VERIFIED


def test_undo_is_single_shot(matched):
    matched.unlink(ORDER_ID)
    matched.undo()
    with pytest.raises(NothingToUndo):
        matched.undo()


def test_new_action_discards_pending_undo(matched):
    matched.unlink(ORDER_ID)
    matched.link(ORDER_ID, "tx2", confidence=70)
    assert matched.pending_undo is None
    with pytest.raises(NothingToUndo):
        matched.undo()


def test_undo_restores_unverified_match(matched):
    matched.unlink(ORDER_ID)
    matched.undo()
    assert matched.state(ORDER_ID) is MatchState.MATCHED


def test_auto_match_discards_pending_undo(matched):
    matched.unlink(ORDER_ID)
    result = auto_match_orders(matched.repo)
    assert result.matched == 1
    assert matched.pending_undo is None
    with pytest.raises(NothingToUndo):
        matched.undo()


def test_failed_transition_leaves_state_unchanged(matched, monkeypatch):
    monkeypatch.setattr(matched.repo, "set_match_verified", _disk_error)
    with pytest.raises(WorkflowError):
        matched.verify(ORDER_ID)
    monkeypatch.undo()

    assert matched.state(ORDER_ID) is MatchState.MATCHED


def test_failed_unlink_keeps_link(matched, monkeypatch):
    monkeypatch.setattr(matched.repo, "save_undo", _disk_error)
    with pytest.raises(WorkflowError):
        matched.unlink(ORDER_ID)
    monkeypatch.undo()

    order = matched.repo.get_order(ORDER_ID)
    assert order.matched_transaction_id == "tx1"
    assert order.match_confidence == 95
    assert matched.pending_undo is None


def test_transaction_category_verification(matched):
    repo = matched.repo
    assert verify_transaction_category(repo, "tx1") == "Shopping > Books"
    tx = repo.get_transaction("tx1")
    assert (tx.confidence, tx.verified) == (100, True)

    unverify_transaction_category(repo, "tx1", original_confidence=90)
    tx = repo.get_transaction("tx1")
    assert (tx.confidence, tx.verified) == (90, False)
