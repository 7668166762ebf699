# budgetview/services/auth.py
"""
Identity provider and auth-state cell.

The app consumes identity through a small surface:

    sign_up(email, password), sign_in(email, password),
    federated_sign_in(provider, email), sign_out(), current_user(user_id)

IdentityProvider implements it locally on the `users` table with werkzeug
password hashes. It also owns an AuthState cell that starts UNKNOWN and is
resolved to signed-in / signed-out by the provider; listeners subscribe to
it and get an unsubscribe function back. The web app keeps one cell per
browser in an AuthStateRegistry.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from models import User
from .errors import AuthFailed, StoreRejected

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

UNKNOWN = "unknown"
SIGNED_OUT = "signed_out"
SIGNED_IN = "signed_in"


@dataclass(frozen=True)
class AuthSnapshot:
    status: str
    user_id: Optional[int] = None
    email: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.status == SIGNED_IN


class AuthState:
    """
    Observable current-user cell.

    Starts UNKNOWN; the first resolve() moves it to SIGNED_IN or SIGNED_OUT.
    Subscribers registered after that get the current value immediately.
    """

    def __init__(self):
        self._value = AuthSnapshot(UNKNOWN)
        self._listeners: List[Callable[[AuthSnapshot], None]] = []

    @property
    def value(self) -> AuthSnapshot:
        return self._value

    def resolve(self, user: Optional[User]) -> None:
        if user is None:
            self._value = AuthSnapshot(SIGNED_OUT)
        else:
            self._value = AuthSnapshot(SIGNED_IN, user_id=user.id, email=user.email)
        for listener in list(self._listeners):
            try:
                listener(self._value)
            except Exception:
                logger.exception("[auth] listener failed")

    def subscribe(self, listener: Callable[[AuthSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        if self._value.status != UNKNOWN:
            listener(self._value)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class AuthStateRegistry:
    """
    One AuthState per browser session.

    `on_created(sid, state)` runs once for each new cell, outside the lock,
    so callers can attach listeners. Signed-out cells should be discarded.
    """

    def __init__(self, on_created: Optional[Callable[[str, AuthState], None]] = None):
        self.on_created = on_created
        self._lock = threading.Lock()
        self._states: Dict[str, AuthState] = {}

    def get(self, sid: str) -> AuthState:
        with self._lock:
            state = self._states.get(sid)
            created = state is None
            if created:
                state = self._states[sid] = AuthState()
        if created and self.on_created is not None:
            self.on_created(sid, state)
        return state

    def discard(self, sid: str) -> None:
        with self._lock:
            self._states.pop(sid, None)

    def __contains__(self, sid) -> bool:
        with self._lock:
            return sid in self._states


def _normalize_email(email) -> str:
    email = str(email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise AuthFailed("Please enter a valid email address.")
    return email


class IdentityProvider:
    def __init__(self, state: Optional[AuthState] = None):
        self.state = state or AuthState()

    def current_user(self, db: Session, user_id: Optional[int]) -> Optional[User]:
        """Resolve a stored session user id; unknown ids count as signed out."""
        user = db.get(User, user_id) if user_id is not None else None
        value = self.state.value
        # Only notify when the answer differs from what listeners last saw
        if value.status == UNKNOWN or value.user_id != (user.id if user else None):
            self.state.resolve(user)
        return user

    def sign_up(self, db: Session, email, password, display_name=None) -> User:
        email = _normalize_email(email)
        password = str(password or "")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        if db.query(User.id).filter(User.email == email).first() is not None:
            raise AuthFailed("An account with this email already exists.")

        user = User(
            email=email,
            display_name=(str(display_name).strip() if display_name else None) or email.split("@")[0],
            password_hash=generate_password_hash(password),
            provider="password",
        )
        self._save(db, user)
        logger.info("[auth] signed up %s", email)
        self.state.resolve(user)
        return user

    def sign_in(self, db: Session, email, password) -> User:
        email = str(email or "").strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user is None or not user.password_hash or not check_password_hash(user.password_hash, str(password or "")):
            logger.warning("[auth] failed sign-in for %r", email)
            raise AuthFailed("Invalid email or password.")

        self.state.resolve(user)
        return user

    def federated_sign_in(self, db: Session, provider: str, email, display_name=None) -> User:
        """
        Sign in with an identity already verified by an external provider.

        Creates the account on first use; an existing password account with
        the same email is reused.
        """
        email = _normalize_email(email)
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(
                email=email,
                display_name=display_name or email.split("@")[0],
                password_hash=None,
                provider=provider,
            )
            self._save(db, user)
            logger.info("[auth] created %s account for %s", provider, email)

        self.state.resolve(user)
        return user

    def sign_out(self) -> None:
        self.state.resolve(None)

    def _save(self, db: Session, user: User) -> None:
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AuthFailed("An account with this email already exists.")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("[auth] store rejected account write: %r", e)
            raise StoreRejected("The account could not be saved.") from e
        db.refresh(user)
