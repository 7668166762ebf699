# budgetview/deps.py
# Role: Shared application-level dependencies and globals.
#       Provides the Jinja2 templates loader, the per-browser identity provider,
#       the live change feed, flash-notification helpers, the standard
#       SQLAlchemy database session dependency and the signed-in-user dependency.

"""
Shared dependencies and globals for BudgetView.
"""

import os
import secrets
from decimal import Decimal
from typing import Generator, List

from fastapi import Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from db import SessionLocal
from models import User
from budgetview.services.auth import SIGNED_OUT, AuthState, AuthStateRegistry, IdentityProvider
from budgetview.services.live import ChangeFeed, LiveSnapshots

# -------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

# Jinja2 templates loader (used by all HTML-rendering routes)
templates = Jinja2Templates(directory=TEMPLATES_DIR)


def format_money(value) -> str:
    """1234567.5 -> '1,234,567.50'"""
    if value is None:
        value = 0
    return f"{Decimal(str(value)):,.2f}"


templates.env.filters["money"] = format_money

# -------------------------------------------------------------------
# Identity
# -------------------------------------------------------------------

SESSION_USER_KEY = "user_id"
# Random per-browser id; keys the auth cell and the live subscriptions
SESSION_ID_KEY = "sid"


def _watch_sign_out(sid: str, state: AuthState) -> None:
    def on_change(snapshot) -> None:
        if snapshot.status == SIGNED_OUT:
            live_snapshots.release(sid)
            auth_states.discard(sid)

    state.subscribe(on_change)


auth_states = AuthStateRegistry(on_created=_watch_sign_out)


def session_id(request: Request) -> str:
    sid = request.session.get(SESSION_ID_KEY)
    if sid is None:
        sid = request.session[SESSION_ID_KEY] = secrets.token_urlsafe(16)
    return sid


def get_identity(request: Request) -> IdentityProvider:
    """Identity provider bound to this browser's auth cell."""
    return IdentityProvider(auth_states.get(session_id(request)))

# -------------------------------------------------------------------
# Live collections
# -------------------------------------------------------------------

# Installed on SessionLocal by main.py
live_feed = ChangeFeed(SessionLocal)
live_snapshots = LiveSnapshots(live_feed)


def get_live_snapshots() -> LiveSnapshots:
    return live_snapshots

# -------------------------------------------------------------------
# Flash notifications
# -------------------------------------------------------------------

def flash(request: Request, message: str, category: str = "success") -> None:
    """Queue a one-shot notification shown on the next rendered page."""
    request.session.setdefault("flash", []).append({"message": message, "category": category})


def pop_flashes(request: Request) -> List[dict]:
    return request.session.pop("flash", [])


def redirect(url: str) -> RedirectResponse:
    # 303 so the browser follows a POST with a GET
    return RedirectResponse(url=url, status_code=303)


# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------------------------------------------------
# Current user
# -------------------------------------------------------------------

def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
) -> User:
    """
    Signed-in user for protected routes.

    Anonymous visitors are sent to /login (303 with a Location header).
    """
    user = identity.current_user(db, request.session.get(SESSION_USER_KEY))
    if user is None:
        request.session.pop(SESSION_USER_KEY, None)
        raise HTTPException(status_code=303, headers={"Location": "/login"})
    return user


def render(request: Request, template: str, context: dict, status_code: int = 200):
    """TemplateResponse with the flash queue and current-user context filled in."""
    context = dict(context)
    context.setdefault("flashes", pop_flashes(request))
    return templates.TemplateResponse(request, template, context, status_code=status_code)
