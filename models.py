# models.py
# Role: SQLAlchemy ORM models for the budgeting domain.
#       Users own Categories (optionally nested one level), Goals (saving or debt)
#       and Transactions, which may be linked to a Goal.

from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from db import Base

# Transaction types
INCOME = "income"
EXPENSE = "expense"
SAVING = "saving"
TRANSACTION_TYPES = (INCOME, EXPENSE, SAVING)

# Goal types
GOAL_SAVING = "saving"
GOAL_DEBT = "debt"
GOAL_TYPES = (GOAL_SAVING, GOAL_DEBT)

# Goal timeframes -> display labels
TIMEFRAMES = {
    "short_term": "Short term",
    "medium_term": "Medium term",
    "long_term": "Long term",
}

# Money columns: 2 decimal places is plenty for personal budgets
Money = Numeric(14, 2)


class User(Base):
    """
    Account record owned by the local identity provider.

    Federated accounts have no password hash; `provider` records where the
    identity came from ("password", "google", ...).
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(120), nullable=True)
    password_hash = Column(String(255), nullable=True)
    provider = Column(String(40), nullable=False, default="password")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)

    # Optional parent; only one level of nesting is allowed
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    def __repr__(self):
        return f"<Category {self.id} {self.name!r} parent={self.parent_id}>"


class Goal(Base):
    """
    Saving or debt goal.

    `current_amount` is never written directly: it is maintained by the
    ledger as the signed sum of the transactions linked to the goal.
    """

    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    goal_name = Column(String(120), nullable=False)
    goal_type = Column(String(20), nullable=False, default=GOAL_SAVING)
    target_amount = Column(Money, nullable=False)
    current_amount = Column(Money, nullable=False, default=0)
    timeframe = Column(String(20), nullable=False, default="medium_term")
    target_date = Column(Date, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Transaction(Base):
    """
    ORM model representing a single income, expense or saving entry.

    Amounts are always positive; the direction comes from `type`.
    """

    __tablename__ = "transactions"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    description = Column(String, nullable=False)

    amount = Column(Money, nullable=False)

    date = Column(Date, nullable=False, index=True)

    # 'income', 'expense' or 'saving'
    type = Column(String(20), nullable=False)

    # Required for income/expense on write; NULL renders as "Uncategorized"
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    # Goal whose balance this transaction contributes to
    linked_goal_id = Column(Integer, ForeignKey("goals.id"), nullable=True, index=True)

    category = relationship("Category", lazy="joined")
    goal = relationship("Goal", lazy="joined")
