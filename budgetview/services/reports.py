# budgetview/services/reports.py
"""
Report aggregations over a user's transaction list.

Everything here is a pure function of already-loaded rows: the dashboard,
the reports page and the JSON chart endpoints all load the user's
transactions once and hand them over.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

import pandas as pd

from models import EXPENSE, INCOME, SAVING
from .categories import UNCATEGORIZED

FRAME_COLUMNS = ["date", "amount", "type", "category"]


def _category_names(categories: Iterable, roll_up: bool = False) -> Dict[object, str]:
    by_id = {c.id: c for c in categories}
    names = {}
    for c in by_id.values():
        target = c
        if roll_up and c.parent_id is not None and c.parent_id in by_id:
            target = by_id[c.parent_id]
        names[c.id] = target.name
    return names


def transactions_frame(
    transactions: Iterable,
    categories: Iterable = (),
    roll_up: bool = False,
) -> pd.DataFrame:
    """
    Build a DataFrame of transactions with the category already resolved
    to a display name. Dangling or missing categories become "Uncategorized".
    """
    names = _category_names(categories, roll_up=roll_up)
    rows = [
        {
            "date": tx.date,
            "amount": float(tx.amount),
            "type": tx.type,
            "category": names.get(tx.category_id, UNCATEGORIZED),
        }
        for tx in transactions
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["date"] = pd.to_datetime(df["date"])
    df["amount"] = df["amount"].astype(float)
    return df


def _between(df: pd.DataFrame, start: Optional[date], end: Optional[date]) -> pd.DataFrame:
    if start is not None:
        df = df[df["date"] >= pd.Timestamp(start)]
    if end is not None:
        df = df[df["date"] <= pd.Timestamp(end)]
    return df


def _total(df: pd.DataFrame, tx_type: str) -> float:
    return round(float(df.loc[df["type"] == tx_type, "amount"].sum()), 2)


def monthly_summary(transactions: Iterable, year: int, month: int) -> Dict[str, float]:
    """Totals for one calendar month; balance is income minus expense."""
    df = transactions_frame(transactions)
    df = df[(df["date"].dt.year == year) & (df["date"].dt.month == month)]

    income = _total(df, INCOME)
    expense = _total(df, EXPENSE)
    return {
        "income": income,
        "expense": expense,
        "saving": _total(df, SAVING),
        "balance": round(income - expense, 2),
    }


def category_distribution(
    transactions: Iterable,
    categories: Iterable,
    tx_type: str = EXPENSE,
    start: Optional[date] = None,
    end: Optional[date] = None,
    roll_up: bool = False,
) -> List[Dict[str, float]]:
    """
    Sum per category for one transaction type, largest first.

    With roll_up, subcategories are folded into their parent.
    """
    df = transactions_frame(transactions, categories, roll_up=roll_up)
    df = _between(df, start, end)
    df = df[df["type"] == tx_type]
    if df.empty:
        return []

    grouped = (
        df.groupby("category")["amount"]
        .sum()
        .reset_index()
        .sort_values(["amount", "category"], ascending=[False, True])
    )
    return [
        {"name": row.category, "value": round(float(row.amount), 2)}
        for row in grouped.itertuples(index=False)
        if row.amount > 0
    ]


def monthly_trends(transactions: Iterable, year: int) -> List[Dict[str, object]]:
    """Income and expense per month of `year`; months without data are 0."""
    df = transactions_frame(transactions)
    df = df[df["date"].dt.year == year]

    monthly = {m: {"income": 0.0, "expense": 0.0} for m in range(1, 13)}
    if not df.empty:
        sums = df.groupby([df["date"].dt.month, "type"])["amount"].sum()
        for (month, tx_type), amount in sums.items():
            if tx_type in (INCOME, EXPENSE):
                monthly[int(month)][tx_type] = round(float(amount), 2)

    return [
        {"month": f"{year:04d}-{m:02d}", "income": monthly[m]["income"], "expense": monthly[m]["expense"]}
        for m in range(1, 13)
    ]


def available_years(transactions: Iterable) -> List[int]:
    df = transactions_frame(transactions)
    years = sorted(int(y) for y in df["date"].dt.year.dropna().unique())
    return years or [date.today().year]
