# routes_auth.py
"""
Sign-up, login and logout pages, plus "Continue with <provider>" sign-in.

Federated sign-in expects an authenticating proxy in front of
/auth/<provider>/callback that forwards the verified email in a header.
"""

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

import config
from budgetview.deps import SESSION_USER_KEY, flash, get_db, get_identity, redirect, render
from budgetview.services.auth import IdentityProvider
from budgetview.services.errors import BudgetError

router = APIRouter()


def federated_providers() -> list:
    if str(config.FEDERATED_AUTH).strip().lower() not in ("1", "true", "yes", "y", "on"):
        return []
    return [p.strip().lower() for p in config.FEDERATED_PROVIDERS.split(",") if p.strip()]


def _login(request: Request, context: dict, status_code: int = 200):
    context = {"providers": federated_providers(), **context}
    return render(request, "login.html", context, status_code=status_code)


def _known_provider(provider: str) -> str:
    provider = provider.lower()
    if provider not in federated_providers():
        raise HTTPException(status_code=404, detail="Unknown sign-in provider")
    return provider


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return _login(request, {})


@router.post("/login")
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    try:
        user = identity.sign_in(db, email, password)
    except BudgetError as e:
        return _login(request, {"email": email, "error": e.message}, status_code=400)

    request.session[SESSION_USER_KEY] = user.id
    flash(request, "Welcome back!")
    return redirect("/dashboard")


@router.get("/login/{provider}")
def federated_login(provider: str):
    provider = _known_provider(provider)
    # The proxy authenticates this path before the request reaches the callback
    return redirect(f"/auth/{provider}/callback")


@router.get("/auth/{provider}/callback")
def federated_callback(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    provider = _known_provider(provider)
    email = request.headers.get(config.FEDERATED_EMAIL_HEADER)
    if not email:
        error = f"Sign-in with {provider.capitalize()} did not return an email address."
        return _login(request, {"error": error}, status_code=400)

    try:
        user = identity.federated_sign_in(
            db, provider, email, display_name=request.headers.get(config.FEDERATED_NAME_HEADER)
        )
    except BudgetError as e:
        return _login(request, {"error": e.message}, status_code=400)

    request.session[SESSION_USER_KEY] = user.id
    flash(request, "Welcome back!")
    return redirect("/dashboard")


@router.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request):
    return render(request, "signup.html", {})


@router.post("/signup")
def signup(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    display_name: str = Form(""),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    context = {"email": email, "display_name": display_name}
    if password != confirm_password:
        context["error"] = "Passwords do not match."
        return render(request, "signup.html", context, status_code=400)

    try:
        user = identity.sign_up(db, email, password, display_name=display_name or None)
    except BudgetError as e:
        context["error"] = e.message
        return render(request, "signup.html", context, status_code=400)

    request.session[SESSION_USER_KEY] = user.id
    flash(request, "Your account is ready.")
    return redirect("/dashboard")


@router.post("/logout")
def logout(request: Request, identity: IdentityProvider = Depends(get_identity)):
    # Signing out releases this browser's live subscriptions
    identity.sign_out()
    request.session.clear()
    flash(request, "Logged out.")
    return redirect("/login")
