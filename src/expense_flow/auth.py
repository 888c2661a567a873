"""Opaque bearer credentials for login-by-email.

There are no passwords and credentials never expire; the in-memory store
loses every session on restart.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from expense_flow.errors import AuthenticationError, NotFoundError, ValidationError
from expense_flow.models import User, utc_now
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    user_id: int
    email: str
    created_at: datetime


class CredentialStore(Protocol):
    def issue(self, user: User) -> str: ...

    def resolve(self, token: str) -> Optional[Session]: ...

    def revoke(self, token: str) -> None: ...


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def issue(self, user: User) -> str:
        token = secrets.token_urlsafe(24)
        self._sessions[token] = Session(user_id=user.id, email=user.email, created_at=utc_now())
        return token

    def resolve(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    def revoke(self, token: str) -> None:
        self._sessions.pop(token, None)


class AuthService:
    def __init__(self, store: RecordStore, credentials: CredentialStore):
        self.store = store
        self.credentials = credentials

    def login(self, email: str) -> tuple[str, User]:
        user = self.store.find_user_by_email((email or "").strip())
        if user is None or not user.is_active:
            raise AuthenticationError("User not found")
        logger.info("User %s logged in", user.email, extra={"user_id": user.id})
        return self.credentials.issue(user), user

    def register(self, email: str, name: str, department: Optional[str] = None) -> tuple[str, User]:
        email = (email or "").strip()
        name = (name or "").strip()
        if not email:
            raise ValidationError("email", "is required")
        if not name:
            raise ValidationError("name", "is required")
        user = self.store.create_user(email=email, name=name, department=department or None, role="employee")
        logger.info("Registered user %s", user.email, extra={"user_id": user.id})
        return self.credentials.issue(user), user

    def authenticate(self, token: Optional[str]) -> User:
        session = self.credentials.resolve(token) if token else None
        if session is None:
            raise AuthenticationError("Authentication required")
        try:
            return self.store.get_user(session.user_id)
        except NotFoundError as exc:
            raise AuthenticationError("Authentication required") from exc

    def logout(self, token: str) -> None:
        self.credentials.revoke(token)
