import os
from datetime import datetime
from sqlalchemy import create_engine, event, Column, Integer, String, Numeric, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import sessionmaker, declarative_base, relationship
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database Setup
# Default to local SQLite, but allow override for AWS RDS (Postgres)
DB_URL = os.getenv("DATABASE_URL", "sqlite:///finance_tracker.db")

def build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url)

    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False})

    # pysqlite defers BEGIN until the first write, which breaks SAVEPOINT;
    # take over transaction control so nested transactions roll back correctly.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine

engine = build_engine(DB_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# --- Models ---

class Transaction(Base):
    __tablename__ = "transactions"

    transaction_id = Column(String, primary_key=True, index=True)
    date = Column(Date, index=True)
    description = Column(String, default="")
    merchant_name = Column(String, default="")
    amount = Column(Numeric(12, 2))
    category = Column(String, nullable=True)

    # Categorization workflow
    confidence = Column(Integer, default=0)     # 0 to 100
    verified = Column(Boolean, default=False)   # True once a user confirms the category

    # Metadata
    source = Column(String, default="plaid")    # 'manual', 'plaid', 'csv_upload'

class AmazonOrder(Base):
    __tablename__ = "amazon_orders"

    order_id = Column(String, primary_key=True, index=True)
    order_date = Column(Date, nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, default="")
    order_status = Column(String, default="")

    # Link to the bank transaction (many orders may point at one transaction)
    matched_transaction_id = Column(
        String, ForeignKey("transactions.transaction_id", ondelete="SET NULL"), nullable=True, index=True
    )
    match_confidence = Column(Integer, default=0)
    match_verified = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "AmazonItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="AmazonItem.id",
    )

class AmazonItem(Base):
    __tablename__ = "amazon_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, ForeignKey("amazon_orders.order_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, default=1)
    category = Column(String, default="", index=True)
    asin = Column(String, nullable=True)
    seller = Column(String, nullable=True)

    order = relationship("AmazonOrder", back_populates="items")

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True)
    parent_category = Column(String, default="")

class PendingUndo(Base):
    """Single-level undo snapshot captured when an order is unlinked."""
    __tablename__ = "pending_undo"

    id = Column(Integer, primary_key=True)  # always 1
    order_id = Column(String, nullable=False)
    transaction_id = Column(String, nullable=False)
    confidence = Column(Integer, default=0)
    verified = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

# --- Init DB ---
def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
