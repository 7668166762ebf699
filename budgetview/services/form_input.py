# budgetview/services/form_input.py
#
# Form Input Helpers
# Converts submitted form values into typed drafts for the services,
# and calculates date ranges for monthly views.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from .errors import ValidationFailed


@dataclass
class TransactionDraft:
    """Field values for a transaction about to be created or edited."""

    description: str
    amount: Decimal
    date: date
    type: str
    category_id: int | None = None
    linked_goal_id: int | None = None


# ---- Scalar parsing ----

def parse_amount(value: Any) -> Decimal:
    """
    Parse a money amount typed by a user.

    Accepts '1500', '1500.50', '1,500.50', '1.500,50' and '100,000'.
    When both separators appear, the last one is the decimal separator;
    a lone comma followed by exactly three digits is a thousands separator.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    s = str(value or "").strip().replace(" ", "").replace("−", "-")
    if not s:
        raise ValidationFailed("Amount is required.")

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        head, _, tail = s.rpartition(",")
        if len(tail) == 3 and head:
            s = s.replace(",", "")
        else:
            s = s.replace(",", ".")

    try:
        return Decimal(s)
    except InvalidOperation:
        raise ValidationFailed(f"Invalid amount: {value!r}.")


def parse_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    s = str(value).strip()
    if s == "" or s.lower() == "none":
        return None
    try:
        return int(s)
    except ValueError:
        raise ValidationFailed(f"Invalid reference: {value!r}.")


def parse_optional_date(s: Any) -> date | None:
    if not s:
        return None
    if isinstance(s, date):
        return s
    s = str(s).strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationFailed(f"Invalid date: {s!r} (expected YYYY-MM-DD).")


# ---- Draft conversion ----

def draft_from_form(form: Mapping[str, Any]) -> TransactionDraft:
    """
    Convert one submitted transaction form into a TransactionDraft.

    Only parsing happens here; business validation (positive amount,
    category rules, ownership) is done by the ledger before writing.
    """
    tx_date = parse_optional_date(form.get("date")) or date.today()

    return TransactionDraft(
        description=str(form.get("description") or "").strip(),
        amount=parse_amount(form.get("amount")),
        date=tx_date,
        type=str(form.get("type") or "").strip().lower(),
        category_id=parse_optional_int(form.get("category_id")),
        linked_goal_id=parse_optional_int(form.get("linked_goal_id")),
    )


# ---- Date Range Utilities ----

def get_month_range(month_str: str | None):
    """
    month_str: 'YYYY-MM' or None.
    Returns (start_date, end_date_exclusive, normalized_month_str).
    If month_str is None or invalid, uses the CURRENT month.
    """
    today = date.today()

    if month_str:
        try:
            year_str, month_only_str = month_str.split("-")
            return _month_bounds(int(year_str), int(month_only_str))
        except ValueError:
            pass
    return _month_bounds(today.year, today.month)


def _month_bounds(year: int, month: int):
    # Out-of-range parts raise ValueError from date()
    start_date = date(year, month, 1)
    if month == 12:
        end_date_exclusive = date(year + 1, 1, 1)
    else:
        end_date_exclusive = date(year, month + 1, 1)

    normalized = f"{year:04d}-{month:02d}"
    return start_date, end_date_exclusive, normalized
