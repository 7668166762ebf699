# main.py
# Role: Application entry point for BudgetView.
#       Configures logging, initializes the FastAPI app, creates database tables,
#       installs the live change feed, mounts static assets, adds the session
#       middleware and registers all route modules.

"""
Main FastAPI app for the personal budgeting tracker.

Here we only:
- configure logging
- create the FastAPI app
- set up sessions and static files
- create DB tables
- include route modules
"""

import logging
import os

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

import config
from db import Base, engine
import models  # noqa: F401  (registers the ORM tables on Base)
from budgetview.deps import TEMPLATES_DIR, live_feed
from budgetview.routes_root import router as root_router
from budgetview.routes_auth import router as auth_router
from budgetview.routes_dashboard import router as dashboard_router
from budgetview.routes_transactions import router as transactions_router
from budgetview.routes_categories import router as categories_router
from budgetview.routes_goals import router as goals_router
from budgetview.routes_reports import router as reports_router
from budgetview.routes_live import router as live_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

# Create database tables (only if they don't exist yet).
# This is safe to run on startup for SQLite and development usage.
Base.metadata.create_all(bind=engine)

# Push committed changes to live subscribers
live_feed.install()

# FastAPI application instance
app = FastAPI(title="BudgetView")

# Signed cookie session: holds the signed-in user id and flash notifications
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY, same_site="lax")

# Serve static files (CSS) from /static
STATIC_DIR = os.path.join(os.path.dirname(TEMPLATES_DIR), "static")
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Root / landing routes
app.include_router(root_router)

# Sign-up, login, logout
app.include_router(auth_router)

# Dashboard (current month overview, goals)
app.include_router(dashboard_router)

# Transactions list + create / edit / delete through the ledger
app.include_router(transactions_router)

# Category tree management
app.include_router(categories_router)

# Saving / debt goals
app.include_router(goals_router)

# Reports page + chart JSON
app.include_router(reports_router)

# Live collection polling
app.include_router(live_router)
