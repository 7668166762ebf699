# budgetview/services/ledger.py
"""
Ledger-goal reconciliation.

A goal's `current_amount` must always equal the signed sum of the
transactions linked to it:

    current_amount == sum(tx.amount * multiplier(goal.goal_type, tx.type))

The store does not enforce this. Every operation below writes the
transaction change and the compensating goal increment(s) in one database
transaction: either all of it commits or none of it does.

Sign rule:

    goal type | income | expense | saving
    ----------+--------+---------+-------
    saving    |   +1   |   -1    |   +1
    debt      |   +1   |   +1    |   +1

An expense against a saving goal is a withdrawal; an expense against a debt
goal is a payment, which increases the amount paid off.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import (
    EXPENSE,
    GOAL_DEBT,
    GOAL_SAVING,
    INCOME,
    SAVING,
    TRANSACTION_TYPES,
    Category,
    Goal,
    Transaction,
)
from .errors import NotFound, StoreRejected, ValidationFailed
from .form_input import TransactionDraft
from .live import mark_changed

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Numeric(14, 2) leaves 12 digits before the point
MAX_AMOUNT = Decimal("1e12")

_MULTIPLIERS = {
    (GOAL_SAVING, INCOME): 1,
    (GOAL_SAVING, EXPENSE): -1,
    (GOAL_SAVING, SAVING): 1,
    (GOAL_DEBT, INCOME): 1,
    (GOAL_DEBT, EXPENSE): 1,
    (GOAL_DEBT, SAVING): 1,
}


# -------------------------------------------------------------------
# Sign rule
# -------------------------------------------------------------------

def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def contribution_multiplier(goal_type: str, tx_type: str) -> int:
    try:
        return _MULTIPLIERS[(goal_type, tx_type)]
    except KeyError:
        raise ValidationFailed(
            f"No contribution rule for a {tx_type!r} transaction on a {goal_type!r} goal."
        )


def contribution(goal_type: str, tx_type: str, amount) -> Decimal:
    """Signed amount a transaction adds to a goal's current_amount."""
    return to_decimal(amount) * contribution_multiplier(goal_type, tx_type)


# -------------------------------------------------------------------
# Lookups & validation
# -------------------------------------------------------------------

def _find_goal(db: Session, user_id: int, goal_id: int | None) -> Goal | None:
    if goal_id is None:
        return None
    return db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first()


def _get_goal(db: Session, user_id: int, goal_id: int) -> Goal:
    goal = _find_goal(db, user_id, goal_id)
    if goal is None:
        raise NotFound("That goal no longer exists.")
    return goal


def _get_transaction(db: Session, user_id: int, tx_id: int) -> Transaction:
    tx = (
        db.query(Transaction)
        .filter(Transaction.id == tx_id, Transaction.user_id == user_id)
        .first()
    )
    if tx is None:
        raise NotFound("That transaction no longer exists.")
    return tx


def validate_draft(db: Session, user_id: int, draft: TransactionDraft) -> Decimal:
    """
    Reject a draft before anything is written.

    Returns the amount rounded to cents: the stored amount and the goal
    contribution must both use this value, or reverts stop matching.
    """
    if not draft.description:
        raise ValidationFailed("Description is required.")

    if draft.type not in TRANSACTION_TYPES:
        raise ValidationFailed(f"Unknown transaction type: {draft.type!r}.")

    amount = to_decimal(draft.amount)
    if not amount.is_finite():
        raise ValidationFailed("Amount must be positive.")
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationFailed("Amount is too large.")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationFailed("Amount must be positive.")

    if draft.category_id is None:
        if draft.type in (INCOME, EXPENSE):
            raise ValidationFailed("Category is required.")
    else:
        exists = (
            db.query(Category.id)
            .filter(Category.id == draft.category_id, Category.user_id == user_id)
            .first()
        )
        if exists is None:
            raise ValidationFailed("Unknown category.")

    return amount


# -------------------------------------------------------------------
# Batch helpers
# -------------------------------------------------------------------

def _increment_goal(db: Session, user_id: int, goal_id: int, delta: Decimal) -> None:
    """
    Apply `current_amount += delta` SQL-side.

    Matching no row means the goal was deleted since it was read.
    """
    result = db.execute(
        update(Goal)
        .where(Goal.id == goal_id, Goal.user_id == user_id)
        .values(current_amount=Goal.current_amount + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("That goal no longer exists.")
    mark_changed(db, "goals", user_id)


def _commit(db: Session, label: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[ledger] %s: store rejected the batch: %r", label, e)
        raise StoreRejected("The change could not be saved. Nothing was applied.") from e


def _run_batch(db: Session, label: str, writes) -> None:
    """
    Run `writes()` and commit, as one all-or-nothing batch.

    Any BudgetError raised mid-batch rolls back what was already staged.
    """
    try:
        writes()
    except (NotFound, ValidationFailed):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[ledger] %s: store rejected the batch: %r", label, e)
        raise StoreRejected("The change could not be saved. Nothing was applied.") from e
    _commit(db, label)


# -------------------------------------------------------------------
# Operations
# -------------------------------------------------------------------

def create_linked_transaction(db: Session, user_id: int, draft: TransactionDraft) -> Transaction:
    """
    Insert a transaction and, if it is linked, add its contribution to the goal.

    Unlinked drafts go through the same path as a plain insert.
    """
    amount = validate_draft(db, user_id, draft)
    goal = _get_goal(db, user_id, draft.linked_goal_id) if draft.linked_goal_id else None
    delta = contribution(goal.goal_type, draft.type, amount) if goal else None

    tx = Transaction(
        user_id=user_id,
        description=draft.description,
        amount=amount,
        date=draft.date,
        type=draft.type,
        category_id=draft.category_id,
        linked_goal_id=goal.id if goal else None,
    )

    def writes():
        db.add(tx)
        if goal is not None:
            _increment_goal(db, user_id, goal.id, delta)
        db.flush()

    _run_batch(db, "create", writes)
    db.refresh(tx)

    if goal is not None:
        logger.info("[ledger] tx %s created, goal %s %+.2f", tx.id, goal.id, delta)
    else:
        logger.info("[ledger] tx %s created", tx.id)
    return tx


def edit_linked_transaction(
    db: Session, user_id: int, tx_id: int, draft: TransactionDraft
) -> Transaction:
    """
    Update a transaction and move its contribution accordingly.

    (a) revert the old contribution from the old goal, if it was linked;
    (b) apply the new contribution to the new goal, if it is linked;
    (c) write the new field values.
    With the same goal on both sides, (a) and (b) net out to the delta.
    """
    amount = validate_draft(db, user_id, draft)
    tx = _get_transaction(db, user_id, tx_id)

    # A vanished old goal has nothing left to revert
    old_goal = _find_goal(db, user_id, tx.linked_goal_id)
    new_goal = _get_goal(db, user_id, draft.linked_goal_id) if draft.linked_goal_id else None

    old_delta = contribution(old_goal.goal_type, tx.type, tx.amount) if old_goal else None
    new_delta = contribution(new_goal.goal_type, draft.type, amount) if new_goal else None

    def writes():
        if old_goal is not None:
            _increment_goal(db, user_id, old_goal.id, -old_delta)
        if new_goal is not None:
            _increment_goal(db, user_id, new_goal.id, new_delta)

        tx.description = draft.description
        tx.amount = amount
        tx.date = draft.date
        tx.type = draft.type
        tx.category_id = draft.category_id
        tx.linked_goal_id = new_goal.id if new_goal else None
        db.flush()

    _run_batch(db, "edit", writes)
    db.refresh(tx)

    logger.info(
        "[ledger] tx %s edited (goal %s -> %s)",
        tx.id,
        old_goal.id if old_goal else None,
        new_goal.id if new_goal else None,
    )
    return tx


def delete_linked_transaction(db: Session, user_id: int, tx_id: int) -> None:
    """Delete a transaction, reverting its contribution if it was linked."""
    tx = _get_transaction(db, user_id, tx_id)
    goal = _find_goal(db, user_id, tx.linked_goal_id)
    delta = contribution(goal.goal_type, tx.type, tx.amount) if goal else None

    def writes():
        if goal is not None:
            _increment_goal(db, user_id, goal.id, -delta)
        db.delete(tx)
        db.flush()

    _run_batch(db, "delete", writes)
    logger.info("[ledger] tx %s deleted", tx_id)


def add_direct_goal_contribution(
    db: Session,
    user_id: int,
    goal_id: int,
    amount,
    description: str | None = None,
    on: date | None = None,
) -> Transaction:
    """
    Manual "add savings" / "make a payment" action.

    Records a `saving` transaction linked to the goal so the transaction list
    stays the audit trail for every balance change.
    """
    goal = _get_goal(db, user_id, goal_id)
    if description is None:
        verb = "Payment towards" if goal.goal_type == GOAL_DEBT else "Contribution to"
        description = f"{verb} {goal.goal_name}"

    draft = TransactionDraft(
        description=description,
        amount=amount,
        date=on or date.today(),
        type=SAVING,
        category_id=None,
        linked_goal_id=goal.id,
    )
    return create_linked_transaction(db, user_id, draft)


def recompute_goal_balance(db: Session, user_id: int, goal_id: int) -> Decimal:
    """
    Signed sum of the contributions currently linked to a goal.

    Equals the stored current_amount whenever the ledger invariant holds.
    """
    goal = _get_goal(db, user_id, goal_id)
    rows = (
        db.query(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.linked_goal_id == goal.id, Transaction.user_id == user_id)
        .group_by(Transaction.type)
        .all()
    )
    total = Decimal(0)
    for tx_type, amount in rows:
        # SQLite sums Numeric columns as floats
        amount = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
        total += contribution(goal.goal_type, tx_type, amount)
    return total
