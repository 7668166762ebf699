import datetime
from decimal import Decimal

import pytest

from budgetview.services.errors import ValidationFailed
from budgetview.services.form_input import (
    draft_from_form,
    get_month_range,
    parse_amount,
    parse_optional_date,
    parse_optional_int,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1500", Decimal("1500")),
        ("1500.50", Decimal("1500.50")),
        ("1,500.50", Decimal("1500.50")),
        ("1.500,50", Decimal("1500.50")),
        ("100,000", Decimal("100000")),
        ("12,5", Decimal("12.5")),
        (" 300 000 ", Decimal("300000")),
        (42, Decimal("42")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "abc", "1.2.3,4,5x"])
def test_parse_amount_rejects_garbage(raw):
    with pytest.raises(ValidationFailed):
        parse_amount(raw)


def test_parse_optional_int():
    assert parse_optional_int("") is None
    assert parse_optional_int("None") is None
    assert parse_optional_int(" 7 ") == 7
    with pytest.raises(ValidationFailed):
        parse_optional_int("seven")


def test_parse_optional_date():
    assert parse_optional_date("") is None
    assert parse_optional_date("2024-02-29") == datetime.date(2024, 2, 29)
    with pytest.raises(ValidationFailed):
        parse_optional_date("29/02/2024")


def test_draft_from_form():
    draft = draft_from_form(
        {
            "description": " Rent ",
            "amount": "1,200.00",
            "date": "2024-03-01",
            "type": "Expense",
            "category_id": "3",
            "linked_goal_id": "",
        }
    )

    assert draft.description == "Rent"
    assert draft.amount == Decimal("1200.00")
    assert draft.date == datetime.date(2024, 3, 1)
    assert draft.type == "expense"
    assert draft.category_id == 3
    assert draft.linked_goal_id is None


def test_draft_from_form_defaults_to_today():
    draft = draft_from_form({"description": "Coffee", "amount": "3.5", "type": "expense"})

    assert draft.date == datetime.date.today()


def test_month_range_rolls_over_the_year():
    assert get_month_range("2024-12") == (
        datetime.date(2024, 12, 1),
        datetime.date(2025, 1, 1),
        "2024-12",
    )


@pytest.mark.parametrize("raw", [None, "", "2024-13", "garbage", "0000-01", "9999-12"])
def test_month_range_falls_back_to_current_month(raw):
    today = datetime.date.today()
    start, _, normalized = get_month_range(raw)

    assert start == today.replace(day=1)
    assert normalized == f"{today.year:04d}-{today.month:02d}"
