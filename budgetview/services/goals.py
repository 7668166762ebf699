# budgetview/services/goals.py
"""
Saving and debt goals.

Goals are created and edited here, but `current_amount` is off limits:
only the ledger moves it (see ledger.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, List, Mapping
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import GOAL_TYPES, TIMEFRAMES, Goal, Transaction
from .errors import NotFound, StoreRejected, ValidationFailed
from .form_input import parse_amount, parse_optional_date
from .live import mark_changed

logger = logging.getLogger(__name__)


@dataclass
class GoalDraft:
    goal_name: str
    target_amount: Decimal
    goal_type: str = "saving"
    timeframe: str = "medium_term"
    target_date: date | None = None
    image_url: str | None = None


@dataclass
class GoalProgress:
    percent: float
    remaining: Decimal
    reached: bool


def goal_draft_from_form(form: Mapping[str, Any]) -> GoalDraft:
    return GoalDraft(
        goal_name=str(form.get("goal_name") or "").strip(),
        target_amount=parse_amount(form.get("target_amount")),
        goal_type=str(form.get("goal_type") or "saving").strip().lower(),
        timeframe=str(form.get("timeframe") or "medium_term").strip(),
        target_date=parse_optional_date(form.get("target_date")),
        image_url=(str(form.get("image_url") or "").strip() or None),
    )


def validate_goal(draft: GoalDraft) -> None:
    if len(draft.goal_name) < 3:
        raise ValidationFailed("Goal name must have at least 3 characters.")
    if draft.goal_type not in GOAL_TYPES:
        raise ValidationFailed("Choose a goal type: saving or debt.")
    if draft.timeframe not in TIMEFRAMES:
        raise ValidationFailed(f"Unknown timeframe: {draft.timeframe!r}.")

    target = Decimal(str(draft.target_amount))
    if not target.is_finite() or target <= 0:
        raise ValidationFailed("Target amount must be positive.")

    if draft.image_url:
        parsed = urlparse(draft.image_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationFailed("Please enter a valid image URL.")


def goal_progress(goal: Goal) -> GoalProgress:
    """
    Display progress for a goal.

    percent is capped to [0, 100]; remaining never goes below zero.
    """
    target = Decimal(str(goal.target_amount or 0))
    current = Decimal(str(goal.current_amount or 0))
    if target <= 0:
        return GoalProgress(percent=0.0, remaining=Decimal(0), reached=False)

    percent = float(current / target * 100)
    return GoalProgress(
        percent=max(0.0, min(percent, 100.0)),
        remaining=max(target - current, Decimal(0)),
        reached=current >= target,
    )


def list_goals(db: Session, user_id: int) -> List[Goal]:
    return (
        db.query(Goal)
        .filter(Goal.user_id == user_id)
        .order_by(Goal.created_at, Goal.id)
        .all()
    )


def get_goal(db: Session, user_id: int, goal_id: int) -> Goal:
    goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first()
    if goal is None:
        raise NotFound("That goal no longer exists.")
    return goal


def _commit(db: Session, label: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[goals] %s: store rejected the batch: %r", label, e)
        raise StoreRejected("The goal could not be saved.") from e


def create_goal(db: Session, user_id: int, draft: GoalDraft) -> Goal:
    validate_goal(draft)
    goal = Goal(
        user_id=user_id,
        goal_name=draft.goal_name,
        goal_type=draft.goal_type,
        target_amount=Decimal(str(draft.target_amount)),
        current_amount=Decimal(0),
        timeframe=draft.timeframe,
        target_date=draft.target_date,
        image_url=draft.image_url,
    )
    db.add(goal)
    _commit(db, "create")
    db.refresh(goal)

    logger.info("[goals] created %s %r (%s)", goal.id, goal.goal_name, goal.goal_type)
    return goal


def update_goal(db: Session, user_id: int, goal_id: int, draft: GoalDraft) -> Goal:
    """
    Edit a goal's settings.

    Changing goal_type while transactions are linked would silently change
    the sign of existing contributions, so that is refused.
    """
    goal = get_goal(db, user_id, goal_id)
    validate_goal(draft)

    if draft.goal_type != goal.goal_type:
        linked = (
            db.query(Transaction.id)
            .filter(Transaction.linked_goal_id == goal.id, Transaction.user_id == user_id)
            .first()
        )
        if linked is not None:
            raise ValidationFailed("The type of a goal with linked transactions cannot be changed.")

    goal.goal_name = draft.goal_name
    goal.goal_type = draft.goal_type
    goal.target_amount = Decimal(str(draft.target_amount))
    goal.timeframe = draft.timeframe
    goal.target_date = draft.target_date
    goal.image_url = draft.image_url
    _commit(db, "update")
    db.refresh(goal)
    return goal


def delete_goal(db: Session, user_id: int, goal_id: int) -> None:
    """Delete a goal; its linked transactions stay as history, unlinked."""
    goal = get_goal(db, user_id, goal_id)

    try:
        unlinked = (
            db.query(Transaction)
            .filter(Transaction.linked_goal_id == goal.id, Transaction.user_id == user_id)
            .update({Transaction.linked_goal_id: None}, synchronize_session=False)
        )
        db.delete(goal)
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[goals] delete: store rejected the batch: %r", e)
        raise StoreRejected("The goal could not be deleted.") from e

    if unlinked:
        mark_changed(db, "transactions", user_id)
    _commit(db, "delete")
    logger.info("[goals] deleted %s (%s transactions unlinked)", goal_id, unlinked)
