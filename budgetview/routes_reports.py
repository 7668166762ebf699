# budgetview/routes_reports.py
"""
Reports page and the JSON endpoints behind its charts.
"""

from datetime import MAXYEAR, MINYEAR, date

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .deps import get_current_user, get_db, render
from .services import reports
from .services.categories import list_categories
from .services.errors import BudgetError
from .services.form_input import parse_optional_date
from models import EXPENSE, TRANSACTION_TYPES, Transaction, User

router = APIRouter()


def _user_transactions(db: Session, user_id: int):
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.date)
        .all()
    )


def _year_error(year) -> str | None:
    if year is not None and not MINYEAR <= year <= MAXYEAR:
        return f"Year must be between {MINYEAR} and {MAXYEAR}."
    return None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=400)


@router.get("/reports")
def reports_page(
    request: Request,
    start: str | None = Query(None),
    end: str | None = Query(None),
    year: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transactions = _user_transactions(db, user.id)
    categories = list_categories(db, user.id)

    years = reports.available_years(transactions)
    error = _year_error(year)
    if error:
        year = None
    year = year or years[-1]

    try:
        start_date = parse_optional_date(start) or date(year, 1, 1)
        end_date = parse_optional_date(end) or date(year, 12, 31)
    except BudgetError as e:
        error = e.message
        start_date, end_date = date(year, 1, 1), date(year, 12, 31)

    return render(
        request,
        "reports.html",
        {
            "user": user,
            "error": error,
            "year": year,
            "years": years,
            "start": start_date,
            "end": end_date,
            "trends": reports.monthly_trends(transactions, year),
            "distribution": reports.category_distribution(
                transactions, categories, start=start_date, end=end_date, roll_up=True
            ),
        },
    )


@router.get("/api/summary")
def api_summary(
    year: int | None = Query(None),
    month: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    error = _year_error(year)
    if error:
        return _bad_request(error)
    today = date.today()
    year = year or today.year
    month = month or today.month
    if not 1 <= month <= 12:
        return _bad_request("Month must be between 1 and 12.")

    return reports.monthly_summary(_user_transactions(db, user.id), year, month)


@router.get("/api/category-distribution")
def api_category_distribution(
    type: str = Query(EXPENSE),
    start: str | None = Query(None),
    end: str | None = Query(None),
    roll_up: bool = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if type not in TRANSACTION_TYPES:
        return _bad_request(f"Unknown transaction type: {type!r}.")
    try:
        start_date = parse_optional_date(start)
        end_date = parse_optional_date(end)
    except BudgetError as e:
        return _bad_request(e.message)

    return reports.category_distribution(
        _user_transactions(db, user.id),
        list_categories(db, user.id),
        tx_type=type,
        start=start_date,
        end=end_date,
        roll_up=roll_up,
    )


@router.get("/api/monthly-trends")
def api_monthly_trends(
    year: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    error = _year_error(year)
    if error:
        return _bad_request(error)
    transactions = _user_transactions(db, user.id)
    year = year or reports.available_years(transactions)[-1]
    return reports.monthly_trends(transactions, year)
