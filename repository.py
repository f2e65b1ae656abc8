"""
repository.py
-------------

SQLAlchemy-backed store for Amazon orders, their items and the bank
transactions they reconcile against.  Business logic (matching, category
inference, the verification workflow) only talks to ``AmazonRepository``
and receives plain ``order_models`` records back, so it can be tested
without a live database.

The repository flushes but never commits; the caller owns the unit of
work and decides when to commit or roll back.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import AmazonItem, AmazonOrder, Category, PendingUndo, Transaction
from errors import OrderNotFound, TransactionNotFound
from order_models import Item, Order, Transaction as TransactionRecord, UnlinkSnapshot

UNDO_ROW_ID = 1


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_item(row: AmazonItem) -> Item:
    return Item(
        title=row.title,
        price=_decimal(row.price),
        quantity=row.quantity or 1,
        category=row.category or "",
        asin=row.asin,
        seller=row.seller,
    )


def _to_order(row: AmazonOrder, with_items: bool = True) -> Order:
    return Order(
        order_id=row.order_id,
        order_date=row.order_date,
        total_amount=_decimal(row.total_amount),
        payment_method=row.payment_method or "",
        status=row.order_status or "",
        items=[_to_item(i) for i in row.items] if with_items else [],
        matched_transaction_id=row.matched_transaction_id,
        match_confidence=row.match_confidence or 0,
        match_verified=bool(row.match_verified),
    )


def _to_transaction(row: Transaction, amazon_order_id: Optional[str]) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=row.transaction_id,
        date=row.date,
        amount=_decimal(row.amount),
        description=row.description or "",
        merchant_name=row.merchant_name or "",
        category=row.category,
        confidence=row.confidence or 0,
        verified=bool(row.verified),
        amazon_order_id=amazon_order_id,
    )


class AmazonRepository:
    def __init__(self, session: Session):
        self.session = session

    # --- unit of work ---

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # --- orders ---

    def _order_row(self, order_id: str) -> AmazonOrder:
        row = self.session.get(AmazonOrder, order_id)
        if row is None:
            raise OrderNotFound(order_id)
        return row

    def _transaction_row(self, transaction_id: str) -> Transaction:
        row = self.session.get(Transaction, transaction_id)
        if row is None:
            raise TransactionNotFound(transaction_id)
        return row

    def upsert_order(self, order: Order) -> bool:
        """Insert or update an order by ``order_id``.  Returns True when created.

        Link fields are left untouched so re-importing an export does not
        undo earlier matching.
        """
        row = self.session.get(AmazonOrder, order.order_id)
        created = row is None
        if created:
            row = AmazonOrder(order_id=order.order_id)
            self.session.add(row)
        row.order_date = order.order_date
        row.total_amount = order.total_amount
        row.payment_method = order.payment_method
        row.order_status = order.status
        self.session.flush()
        return created

    def add_items(self, order_id: str, items: Iterable[Item]):
        """Replace every item of the order with ``items``."""
        row = self._order_row(order_id)
        row.items = [
            AmazonItem(
                title=item.title,
                price=item.price,
                quantity=item.quantity,
                category=item.category,
                asin=item.asin or None,
                seller=item.seller or None,
            )
            for item in items
        ]
        self.session.flush()

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self.session.get(AmazonOrder, order_id)
        return _to_order(row) if row is not None else None

    def get_orders(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        matched: Optional[bool] = None,
    ) -> List[Order]:
        # $0 orders are cancelled or fully refunded
        query = self.session.query(AmazonOrder).filter(AmazonOrder.total_amount > 0)
        if start_date:
            query = query.filter(AmazonOrder.order_date >= start_date)
        if end_date:
            query = query.filter(AmazonOrder.order_date <= end_date)
        if matched is True:
            query = query.filter(AmazonOrder.matched_transaction_id.isnot(None))
        elif matched is False:
            query = query.filter(AmazonOrder.matched_transaction_id.is_(None))
        rows = query.order_by(AmazonOrder.order_date.desc(), AmazonOrder.order_id).all()
        return [_to_order(r) for r in rows]

    def get_unmatched_orders(self) -> List[Order]:
        return self.get_orders(matched=False)

    # --- transactions ---

    def _linked_order_ids(self, transaction_ids: Optional[List[str]] = None) -> dict:
        query = self.session.query(AmazonOrder.matched_transaction_id, AmazonOrder.order_id).filter(
            AmazonOrder.matched_transaction_id.isnot(None)
        )
        if transaction_ids is not None:
            query = query.filter(AmazonOrder.matched_transaction_id.in_(transaction_ids))
        linked = {}
        for tx_id, order_id in query.order_by(AmazonOrder.order_id).all():
            linked.setdefault(tx_id, order_id)
        return linked

    def get_transactions(self, limit: int = 50) -> List[TransactionRecord]:
        rows = (
            self.session.query(Transaction)
            .order_by(Transaction.date.desc(), Transaction.transaction_id)
            .limit(limit)
            .all()
        )
        linked = self._linked_order_ids([r.transaction_id for r in rows])
        return [_to_transaction(r, linked.get(r.transaction_id)) for r in rows]

    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        row = self.session.get(Transaction, transaction_id)
        if row is None:
            return None
        linked = self._linked_order_ids([transaction_id])
        return _to_transaction(row, linked.get(transaction_id))

    def update_transaction_category(self, transaction_id: str, category: str, confidence: int):
        row = self._transaction_row(transaction_id)
        row.category = category
        row.confidence = confidence
        row.verified = False
        self.session.flush()

    def set_transaction_verified(self, transaction_id: str, verified: bool, confidence: Optional[int] = None):
        row = self._transaction_row(transaction_id)
        row.verified = verified
        if confidence is not None:
            row.confidence = confidence
        self.session.flush()

    # --- links ---

    def link_order_to_transaction(self, order_id: str, transaction_id: str, confidence: int) -> bool:
        """Point the order at a transaction.  Returns False if nothing changed."""
        row = self._order_row(order_id)
        self._transaction_row(transaction_id)
        if row.matched_transaction_id == transaction_id and row.match_confidence == confidence:
            return False
        row.matched_transaction_id = transaction_id
        row.match_confidence = confidence
        row.match_verified = confidence == 100
        self.session.flush()
        return True

    def unlink_order(self, order_id: str):
        row = self._order_row(order_id)
        row.matched_transaction_id = None
        row.match_confidence = 0
        row.match_verified = False
        self.session.flush()

    def set_match_verified(self, order_id: str, verified: bool):
        row = self._order_row(order_id)
        row.match_verified = verified
        self.session.flush()

    def reset_all_matchings(self) -> int:
        count = (
            self.session.query(AmazonOrder)
            .filter(AmazonOrder.matched_transaction_id.isnot(None))
            .update(
                {
                    AmazonOrder.matched_transaction_id: None,
                    AmazonOrder.match_confidence: 0,
                    AmazonOrder.match_verified: False,
                },
                synchronize_session="fetch",
            )
        )
        self.session.flush()
        return count

    # --- categories ---

    def add_category(self, name: str, parent: Optional[str] = None) -> bool:
        """Create a category.  Returns False if it already exists."""
        if self.session.query(Category).filter_by(name=name).first() is not None:
            return False
        try:
            with self.session.begin_nested():
                self.session.add(Category(name=name, parent_category=parent or ""))
        except IntegrityError:
            return False
        return True

    def list_categories(self) -> List[str]:
        return [c.name for c in self.session.query(Category).order_by(Category.name).all()]

    # --- undo ---

    def save_undo(self, snapshot: UnlinkSnapshot):
        row = self.session.get(PendingUndo, UNDO_ROW_ID)
        if row is None:
            row = PendingUndo(id=UNDO_ROW_ID)
            self.session.add(row)
        row.order_id = snapshot.order_id
        row.transaction_id = snapshot.transaction_id
        row.confidence = snapshot.confidence
        row.verified = snapshot.verified
        self.session.flush()

    def load_undo(self) -> Optional[UnlinkSnapshot]:
        row = self.session.get(PendingUndo, UNDO_ROW_ID)
        if row is None:
            return None
        return UnlinkSnapshot(
            order_id=row.order_id,
            transaction_id=row.transaction_id,
            confidence=row.confidence,
            verified=bool(row.verified),
        )

    def clear_undo(self):
        row = self.session.get(PendingUndo, UNDO_ROW_ID)
        if row is not None:
            self.session.delete(row)
            self.session.flush()
