from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd

from order_models import Order, Transaction


def orders_to_df(orders: List[Order]) -> pd.DataFrame:
    if not orders:
        return pd.DataFrame(columns=["OrderId", "Date", "Total", "Matched"])

    df = pd.DataFrame(
        [
            {
                "OrderId": o.order_id,
                "Date": o.order_date,
                "Total": float(o.total_amount),
                "Matched": bool(o.matched_transaction_id),
            }
            for o in orders
        ]
    )
    df["Date"] = pd.to_datetime(df["Date"])
    df["Month"] = df["Date"].dt.to_period("M").astype(str)
    return df


def items_to_df(orders: List[Order]) -> pd.DataFrame:
    rows = [
        {
            "OrderId": o.order_id,
            "Category": item.category or None,
            "Title": item.title,
            "Spend": float(item.price) * item.quantity,
        }
        for o in orders
        for item in o.items
    ]
    if not rows:
        return pd.DataFrame(columns=["OrderId", "Category", "Title", "Spend"])
    return pd.DataFrame(rows)


def order_stats(orders: List[Order], top_n: int = 10) -> Dict:
    """Summarize imported orders and break item spend down by Amazon category."""
    orders = [o for o in orders if o.total_amount > 0]
    df = orders_to_df(orders)
    if df.empty:
        return {
            "total_orders": 0,
            "matched_orders": 0,
            "total_spent": 0.0,
            "months_with_orders": 0,
            "category_breakdown": [],
        }

    items = items_to_df(orders).dropna(subset=["Category"])
    breakdown = []
    if not items.empty:
        by_cat = (
            items.groupby("Category", sort=False)
            .agg(item_count=("Title", "count"), total_spent=("Spend", "sum"))
            .sort_values("total_spent", ascending=False, kind="stable")
            .head(top_n)
        )
        breakdown = [
            {"category": cat, "item_count": int(row["item_count"]), "total_spent": round(float(row["total_spent"]), 2)}
            for cat, row in by_cat.iterrows()
        ]

    return {
        "total_orders": int(len(df)),
        "matched_orders": int(df["Matched"].sum()),
        "total_spent": round(float(df["Total"].sum()), 2),
        "months_with_orders": int(df["Month"].nunique()),
        "category_breakdown": breakdown,
    }


def suggest_transaction_splits(transaction: Transaction, order: Optional[Order]) -> Dict:
    """
    Suggest how to split a matched transaction across the item categories
    of its Amazon order.  Amounts are negative, as expenses are stored.
    """
    if order is None:
        return {"can_split": False, "reason": "Transaction not linked to Amazon order", "suggestions": []}
    if len(order.items) <= 1:
        return {"can_split": False, "reason": "Order has only one item", "suggestions": []}

    items = items_to_df([order])
    items["Category"] = items["Category"].fillna("Uncategorized")
    items["Price"] = [item.price * item.quantity for item in order.items]

    suggestions = []
    for category, group in items.groupby("Category", sort=False):
        total = sum(group["Price"], Decimal("0"))
        suggestions.append(
            {
                "category": category,
                "amount": -abs(total),
                "items": list(group["Title"]),
                "item_count": len(group),
                "reasoning": f"{len(group)} item(s) in {category}",
            }
        )

    return {
        "can_split": True,
        "transaction_id": transaction.transaction_id,
        "original_amount": transaction.amount,
        "suggestions": suggestions,
        "total_suggested": sum((abs(s["amount"]) for s in suggestions), Decimal("0")),
    }
