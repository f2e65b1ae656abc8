from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional


@dataclass
class Item:
    title: str
    price: Decimal
    quantity: int = 1
    category: str = ""
    asin: Optional[str] = None
    seller: Optional[str] = None


@dataclass
class Order:
    order_id: str
    order_date: date
    total_amount: Decimal
    payment_method: str = ""
    status: str = ""
    items: List[Item] = field(default_factory=list)
    # link state, filled in by the repository
    matched_transaction_id: Optional[str] = None
    match_confidence: int = 0
    match_verified: bool = False


@dataclass
class Transaction:
    transaction_id: str
    date: date
    amount: Decimal
    description: str = ""
    merchant_name: str = ""
    category: Optional[str] = None
    confidence: int = 0
    verified: bool = False
    amazon_order_id: Optional[str] = None


@dataclass
class Match:
    order_id: str
    transaction_id: str
    confidence: int
    reason: str


@dataclass
class UnlinkSnapshot:
    order_id: str
    transaction_id: str
    confidence: int
    verified: bool = False


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    failed: int = 0
    skipped_rows: int = 0
    total: int = 0


@dataclass
class MatchResult:
    matched: int
    unmatched: int
    matches: List[Match]
    failed: int = 0
