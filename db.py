# db.py
# Role: Database bootstrap for BudgetView.
#       Defines the SQLAlchemy engine, session factory, and declarative Base.
#       Also ensures the on-disk database directory exists for the default SQLite URL.

"""
Database setup for BudgetView.

- Uses DATABASE_URL from config (SQLite file under <project_root>/database by default)
- Ensures the 'database' folder exists when the default SQLite file is used.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DATABASE_URL, DEFAULT_DB_PATH

if DATABASE_URL.endswith(DEFAULT_DB_PATH):
    os.makedirs(os.path.dirname(DEFAULT_DB_PATH), exist_ok=True)  # ensure folder exists


def make_engine(url: str):
    """
    Create an engine for the given URL.

    For SQLite, we need check_same_thread=False for FastAPI (threaded request handling).
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)

# Standard session factory used via dependency injection (see budgetview/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()
