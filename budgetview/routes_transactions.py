# routes_transactions.py
"""
Routes for the transactions list and the create / edit / delete actions.

Every write goes through the ledger, so goal balances follow linked
transactions automatically.
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from models import EXPENSE, INCOME, SAVING, TRANSACTION_TYPES, Transaction, User
from budgetview.deps import flash, get_current_user, get_db, redirect, render
from budgetview.services import ledger
from budgetview.services.auto_categorize import suggest_category
from budgetview.services.categories import build_category_tree, category_labels, flatten_tree, list_categories
from budgetview.services.errors import BudgetError
from budgetview.services.form_input import draft_from_form, get_month_range, parse_amount
from budgetview.services.goals import list_goals

router = APIRouter()


def _list_url(month: str | None) -> str:
    return f"/transactions?month={month}" if month else "/transactions"


@router.get("/transactions", response_class=HTMLResponse)
def transactions_page(
    request: Request,
    month: str | None = Query(None),
    type: str | None = Query(None),
    category_id: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    range_start, range_end_exclusive, normalized_month = get_month_range(month)

    query = db.query(Transaction).filter(
        Transaction.user_id == user.id,
        Transaction.date >= range_start,
        Transaction.date < range_end_exclusive,
    )

    if type in TRANSACTION_TYPES:
        query = query.filter(Transaction.type == type)

    # Category filter (supports "None" for uncategorized)
    if category_id == "None":
        query = query.filter(Transaction.category_id.is_(None))
    elif category_id and category_id.isdigit():
        query = query.filter(Transaction.category_id == int(category_id))

    # Totals for filtered view
    totals = dict(
        query.with_entities(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .group_by(Transaction.type)
        .all()
    )

    transactions = query.order_by(Transaction.date.desc(), Transaction.id.desc()).all()

    categories = list_categories(db, user.id)

    return render(
        request,
        "transactions.html",
        {
            "user": user,
            "transactions": transactions,
            "current_month": normalized_month,
            "selected_type": type or "",
            "selected_category": category_id or "",
            "category_options": list(flatten_tree(build_category_tree(categories))),
            "category_labels": category_labels(categories),
            "goals": list_goals(db, user.id),
            "income_sum": totals.get(INCOME, 0),
            "expense_sum": totals.get(EXPENSE, 0),
            "saving_sum": totals.get(SAVING, 0),
            "transaction_types": TRANSACTION_TYPES,
        },
    )


@router.post("/transactions")
async def create_transaction(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = await request.form()
    month = form.get("month") or None
    try:
        tx = ledger.create_linked_transaction(db, user.id, draft_from_form(form))
    except BudgetError as e:
        flash(request, e.message, "error")
        return redirect(_list_url(month))

    flash(request, f'Added "{tx.description}".')
    return redirect(_list_url(month or tx.date.strftime("%Y-%m")))


@router.post("/transactions/{tx_id}/edit")
async def edit_transaction(
    tx_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = await request.form()
    month = form.get("month") or None
    try:
        tx = ledger.edit_linked_transaction(db, user.id, tx_id, draft_from_form(form))
    except BudgetError as e:
        flash(request, e.message, "error")
        return redirect(_list_url(month))

    flash(request, f'Updated "{tx.description}".')
    return redirect(_list_url(month or tx.date.strftime("%Y-%m")))


@router.post("/transactions/{tx_id}/delete")
async def delete_transaction(
    tx_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = await request.form()
    month = form.get("month") or None
    try:
        ledger.delete_linked_transaction(db, user.id, tx_id)
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, "Transaction deleted.")
    return redirect(_list_url(month))


@router.post("/transactions/suggest-category")
async def suggest_transaction_category(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """JSON helper for the form's "suggest" button."""
    form = await request.form()
    description = str(form.get("description") or "").strip()
    if not description:
        return JSONResponse(
            {"success": False, "message": "Please enter a description first."},
            status_code=400,
        )

    categories = list_categories(db, user.id)
    labels = category_labels(categories)
    by_label = {label: cid for cid, label in labels.items()}

    amount = None
    if form.get("amount"):
        try:
            amount = parse_amount(form.get("amount"))
        except BudgetError:
            # An unparsable amount only drops the hint
            amount = None

    category, confidence, reason = suggest_category(description, by_label.keys(), amount=amount)
    return {
        "success": category is not None,
        "category_id": by_label.get(category) if category else None,
        "category": category,
        "confidence": confidence,
        "reason": reason,
    }
