# budgetview/routes_dashboard.py
# Role: Landing page after sign-in: this month's totals, where the money went,
#       the latest transactions and how each goal is progressing.
"""
Dashboard page.
"""

from datetime import date, timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .deps import get_current_user, get_db, render
from .services import reports
from .services.categories import list_categories
from .services.form_input import get_month_range
from .services.goals import goal_progress, list_goals
from models import Transaction, User

router = APIRouter()


@router.get("/dashboard")
def dashboard_page(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    today = date.today()
    month_label = today.strftime("%B %Y")

    transactions = (
        db.query(Transaction)
        .filter(Transaction.user_id == user.id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )
    categories = list_categories(db, user.id)

    summary = reports.monthly_summary(transactions, today.year, today.month)

    month_start, next_month_start, _ = get_month_range(None)
    spending_by_category = reports.category_distribution(
        transactions,
        categories,
        start=month_start,
        end=next_month_start - timedelta(days=1),
        roll_up=True,
    )

    goals = list_goals(db, user.id)

    return render(
        request,
        "dashboard.html",
        {
            "user": user,
            "today": today,
            "month_label": month_label,
            "summary": summary,
            "spending_by_category": spending_by_category,
            "total_spent": sum(item["value"] for item in spending_by_category),
            # 5 most recent transactions
            "recent_transactions": transactions[:5],
            "goals": [(goal, goal_progress(goal)) for goal in goals],
        },
    )
