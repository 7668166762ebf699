# routes_goals.py
"""
Saving / debt goals: list with progress, create, edit, delete,
and the "add savings" / "make a payment" action.
"""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from models import GOAL_TYPES, TIMEFRAMES, User
from budgetview.deps import flash, format_money, get_current_user, get_db, redirect, render
from budgetview.services import goals as goal_service
from budgetview.services import ledger
from budgetview.services.errors import BudgetError
from budgetview.services.form_input import parse_amount

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/goals", response_class=HTMLResponse)
def goals_page(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    goals = []
    for goal in goal_service.list_goals(db, user.id):
        # Stored balance must equal the sum of linked contributions
        expected = ledger.recompute_goal_balance(db, user.id, goal.id)
        out_of_sync = expected != goal.current_amount
        if out_of_sync:
            logger.warning(
                "[goals] goal %s balance %s differs from linked total %s",
                goal.id, goal.current_amount, expected,
            )
        goals.append((goal, goal_service.goal_progress(goal), out_of_sync))

    return render(
        request,
        "goals.html",
        {
            "user": user,
            "goals": goals,
            "goal_types": GOAL_TYPES,
            "timeframes": TIMEFRAMES,
        },
    )


@router.post("/goals")
async def create_goal(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = await request.form()
    try:
        goal = goal_service.create_goal(db, user.id, goal_service.goal_draft_from_form(form))
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, f'Goal "{goal.goal_name}" created.')
    return redirect("/goals")


@router.post("/goals/{goal_id}/edit")
async def edit_goal(
    goal_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = await request.form()
    try:
        goal = goal_service.update_goal(db, user.id, goal_id, goal_service.goal_draft_from_form(form))
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, f'Goal "{goal.goal_name}" updated.')
    return redirect("/goals")


@router.post("/goals/{goal_id}/delete")
def delete_goal(
    goal_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        goal_service.delete_goal(db, user.id, goal_id)
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, "Goal deleted.")
    return redirect("/goals")


@router.post("/goals/{goal_id}/contribute")
def contribute_to_goal(
    goal_id: int,
    request: Request,
    amount: str = Form(""),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        tx = ledger.add_direct_goal_contribution(db, user.id, goal_id, parse_amount(amount))
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, f"Added {format_money(tx.amount)} to your goal.")
    return redirect("/goals")
