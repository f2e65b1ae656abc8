"""
verification.py
---------------

Per-order match state machine driven by user actions::

    UNMATCHED --link/auto-match--> MATCHED --verify--> VERIFIED
        ^                            |  ^                  |
        +-------------unlink---------+  +-----unverify-----+
        +-------------unlink------------------------------+

Unlinking stores a snapshot of the link so the next ``undo`` can restore
it.  Only one undo is kept, and any other action discards it.

Each transition is one database transaction: if persistence fails the
session is rolled back and the order keeps its previous state.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

import linker
from errors import InvalidTransition, NothingToUndo, OrderNotFound, WorkflowError
from order_models import Order, UnlinkSnapshot

logger = logging.getLogger(__name__)

MANUAL_LINK_CONFIDENCE = 100


class MatchState(str, enum.Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    VERIFIED = "verified"


def state_of(order: Order) -> MatchState:
    if not order.matched_transaction_id:
        return MatchState.UNMATCHED
    if order.match_verified:
        return MatchState.VERIFIED
    return MatchState.MATCHED


class MatchWorkflow:
    def __init__(self, repo):
        self.repo = repo

    @contextmanager
    def _transition(self, keep_undo: bool = False):
        try:
            if not keep_undo:
                self.repo.clear_undo()
            yield
            self.repo.commit()
        except SQLAlchemyError as exc:
            self.repo.rollback()
            raise WorkflowError(str(exc)) from exc
        except Exception:
            self.repo.rollback()
            raise

    def _order(self, order_id: str) -> Order:
        order = self.repo.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def state(self, order_id: str) -> MatchState:
        return state_of(self._order(order_id))

    @property
    def pending_undo(self) -> Optional[UnlinkSnapshot]:
        return self.repo.load_undo()

    def link(self, order_id: str, transaction_id: str, confidence: int = MANUAL_LINK_CONFIDENCE) -> MatchState:
        """Manually link an unmatched order to a transaction."""
        with self._transition():
            linker.relink(self.repo, order_id, transaction_id, confidence)
        return self.state(order_id)

    def verify(self, order_id: str) -> MatchState:
        with self._transition():
            current = state_of(self._order(order_id))
            if current is not MatchState.MATCHED:
                raise InvalidTransition(order_id, current.value, "verify")
            self.repo.set_match_verified(order_id, True)
        return MatchState.VERIFIED

    def unverify(self, order_id: str) -> MatchState:
        """Return a verified match to MATCHED.

        The transaction's category is unverified too, so automatic
        categorization may update it again.
        """
        with self._transition():
            order = self._order(order_id)
            current = state_of(order)
            if current is not MatchState.VERIFIED:
                raise InvalidTransition(order_id, current.value, "unverify")
            self.repo.set_match_verified(order_id, False)
            self.repo.set_transaction_verified(order.matched_transaction_id, False)
        return MatchState.MATCHED

    def unlink(self, order_id: str) -> UnlinkSnapshot:
        with self._transition():
            snapshot = linker.unlink(self.repo, order_id)
            self.repo.save_undo(snapshot)
        logger.info("Unlinked order %s from %s", order_id, snapshot.transaction_id)
        return snapshot

    def undo(self) -> UnlinkSnapshot:
        """Restore the link removed by the most recent unlink."""
        snapshot = self.repo.load_undo()
        if snapshot is None:
            raise NothingToUndo("No unlink to undo")
        with self._transition():
            linker.relink(
                self.repo, snapshot.order_id, snapshot.transaction_id, snapshot.confidence, snapshot.verified
            )
        logger.info("Restored order %s to %s", snapshot.order_id, snapshot.transaction_id)
        return snapshot


def verify_transaction_category(repo, transaction_id: str) -> Optional[str]:
    """Mark a transaction's category as confirmed by the user."""
    try:
        repo.set_transaction_verified(transaction_id, True, confidence=100)
        repo.commit()
    except SQLAlchemyError as exc:
        repo.rollback()
        raise WorkflowError(str(exc)) from exc
    return repo.get_transaction(transaction_id).category


def unverify_transaction_category(repo, transaction_id: str, original_confidence: int = 0) -> Optional[str]:
    try:
        repo.set_transaction_verified(transaction_id, False, confidence=original_confidence)
        repo.commit()
    except SQLAlchemyError as exc:
        repo.rollback()
        raise WorkflowError(str(exc)) from exc
    return repo.get_transaction(transaction_id).category
