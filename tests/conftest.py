from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from database import Base, Transaction, build_engine
from order_models import Item, Order, Transaction as TransactionRecord
from repository import AmazonRepository


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def repo(session):
    return AmazonRepository(session)


@pytest.fixture
def add_transaction(session):
    def _add(transaction_id, day, amount, description="AMAZON.COM*AB12CD", merchant_name="", **kwargs):
        session.add(
            Transaction(
                transaction_id=transaction_id,
                date=day,
                amount=Decimal(str(amount)),
                description=description,
                merchant_name=merchant_name,
                **kwargs,
            )
        )
        session.commit()

    return _add


def make_order(order_id="112-3456789", day=date(2024, 1, 10), total="45.99", categories=("Books",), **kwargs):
    items = [Item(title=f"Item {i}", price=Decimal(total), category=c) for i, c in enumerate(categories)]
    return Order(order_id=order_id, order_date=day, total_amount=Decimal(total), items=items, **kwargs)


def make_tx(transaction_id="tx1", day=date(2024, 1, 11), amount="-45.99", description="AMAZON.COM*AB12CD", **kwargs):
    return TransactionRecord(
        transaction_id=transaction_id, date=day, amount=Decimal(amount), description=description, **kwargs
    )


SAMPLE_CSV = (
    "Order ID,Order Date,Total Owed,Product Name,Unit Price,Quantity,Category,ASIN,Order Status,Payment Instrument Type\n"
    '112-3456789,2024-01-10,"$45.99","Dune, Deluxe Edition",$45.99,1,Books,B000TEST01,Closed,Visa - 1234\n'
)
