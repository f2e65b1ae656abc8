"""
order_import.py
---------------

Parse an Amazon order-history export, normalise its vendor-specific column
names into ``Order``/``Item`` records and save them through the
repository.  Amazon has shipped several export layouts over the years, so
every canonical field is looked up through a list of header aliases.

Rows that cannot be used are logged and skipped; only an export with no
data at all aborts the import.
"""

from __future__ import annotations

import csv
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from errors import DateParseError, EmptyExportError, OrderImportError, RowSkipped
from order_models import ImportResult, Item, Order

logger = logging.getLogger(__name__)

# Header aliases per canonical field, first match wins.
ORDER_ID_HEADERS = ["Order ID", "Order Number"]
ORDER_DATE_HEADERS = ["Order Date", "Purchase Date"]
TOTAL_HEADERS = ["Total Owed", "Total", "Order Total"]
TITLE_HEADERS = ["Product Name", "Title", "Item"]
PRICE_HEADERS = ["Unit Price", "Item Total", "Price"]
QUANTITY_HEADERS = ["Quantity"]
CATEGORY_HEADERS = ["Category", "Product Group"]
ASIN_HEADERS = ["ASIN"]
SELLER_HEADERS = ["Seller"]
STATUS_HEADERS = ["Order Status", "Shipment Status"]
PAYMENT_HEADERS = ["Payment Instrument Type"]

# A row may be short a few trailing columns before it counts as malformed.
MAX_MISSING_COLUMNS = 5

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def split_csv_line(line: str) -> List[str]:
    """Split one CSV line, honouring double-quoted fields and ``""`` escapes."""
    return [value.strip() for value in next(csv.reader([line], skipinitialspace=True), [])]


def standardize_date(value: str) -> date:
    """Parse any date representation Amazon uses into a calendar date."""
    try:
        parsed = pd.to_datetime(value.strip())
    except (ValueError, TypeError, OverflowError) as exc:
        raise DateParseError(value) from exc
    if pd.isna(parsed):
        raise DateParseError(value)
    return parsed.date()


def parse_amount(value: str) -> Decimal:
    cleaned = _NON_NUMERIC.sub("", value or "")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")


def parse_quantity(value: str) -> int:
    cleaned = (value or "").strip()
    if not cleaned:
        return 1
    try:
        return int(float(cleaned))
    except (ValueError, OverflowError):
        return 1


def _field(row: Dict[str, str], headers: List[str], default: str = "") -> str:
    for header in headers:
        if row.get(header):
            return row[header]
    return default


def normalize_order_csv(text: str) -> Tuple[List[Order], List[RowSkipped]]:
    """Group the rows of an order export into orders.

    Returns the orders in order of first appearance along with the rows
    that were skipped.
    """
    lines = [line for line in (text or "").strip().splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptyExportError("CSV file is empty or has no data rows")

    headers = split_csv_line(lines[0])
    orders: Dict[str, Order] = {}
    skipped: List[RowSkipped] = []

    def skip(line_number: int, reason: str):
        err = RowSkipped(line_number, reason)
        logger.warning(str(err))
        skipped.append(err)

    for index, line in enumerate(lines[1:], start=2):
        values = split_csv_line(line)
        if len(values) < len(headers) - MAX_MISSING_COLUMNS:
            skip(index, "Malformed line")
            continue

        row = {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}

        order_id = _field(row, ORDER_ID_HEADERS)
        order_date = _field(row, ORDER_DATE_HEADERS)
        if not order_id or not order_date:
            skip(index, "Missing order ID or date")
            continue

        status = _field(row, STATUS_HEADERS)
        quantity = parse_quantity(_field(row, QUANTITY_HEADERS))
        if "cancel" in status.lower() and quantity == 0:
            skip(index, "Cancelled order with no items")
            continue

        try:
            parsed_date = standardize_date(order_date)
        except DateParseError as exc:
            skip(index, str(exc))
            continue

        order = orders.get(order_id)
        if order is None:
            order = Order(
                order_id=order_id,
                order_date=parsed_date,
                total_amount=parse_amount(_field(row, TOTAL_HEADERS, "0")),
                payment_method=_field(row, PAYMENT_HEADERS),
                status=status,
            )
            orders[order_id] = order

        title = _field(row, TITLE_HEADERS).strip()
        if not title or quantity < 1:
            logger.debug("Row %d of order %s has no usable item", index, order_id)
            continue

        order.items.append(
            Item(
                title=title,
                price=parse_amount(_field(row, PRICE_HEADERS, "0")),
                quantity=quantity,
                category=_field(row, CATEGORY_HEADERS),
                asin=_field(row, ASIN_HEADERS) or None,
                seller=_field(row, SELLER_HEADERS) or None,
            )
        )

    return list(orders.values()), skipped


def parse_order_csv(text: str) -> List[Order]:
    orders, _ = normalize_order_csv(text)
    return orders


def import_orders(repo, text: str) -> ImportResult:
    """Parse ``text`` and upsert every order it contains.

    Safe to run repeatedly on the same export: orders are upserted by
    ``order_id`` and their items replaced.  A failure on one order is
    logged and counted; the rest of the export is still imported.
    """
    orders, skipped = normalize_order_csv(text)
    result = ImportResult(skipped_rows=len(skipped), total=len(orders))

    for order in orders:
        try:
            created = repo.upsert_order(order)
            repo.add_items(order.order_id, order.items)
            repo.commit()
        except SQLAlchemyError as exc:
            repo.rollback()
            logger.error(str(OrderImportError(order.order_id, exc)))
            result.failed += 1
            continue

        if created:
            result.imported += 1
        else:
            result.updated += 1

    logger.info(
        "Imported %d new and %d existing of %d orders (%d failed, %d rows skipped)",
        result.imported,
        result.updated,
        result.total,
        result.failed,
        result.skipped_rows,
    )
    return result
