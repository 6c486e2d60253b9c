"""
Identity store: the credential collaborator the session core depends on.

The session middleware only needs find_identity, the token issuer
find_user_by_id and login verify_password. The rest backs registration and the admin endpoints.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, defer

from models.user import User
from utils.exceptions import PersistenceError
from utils.roles import DEFAULT_ROLE, ROLES
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class EmailAlreadyRegistered(ValueError):
    pass


class UserStore:
    def __init__(self, session_getter: Callable[[], Session]):
        self._session_getter = session_getter

    @property
    def session(self) -> Session:
        return self._session_getter()

    def _commit(self, action: str):
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self._fail(action, exc)

    def _fail(self, action: str, exc: SQLAlchemyError):
        self.session.rollback()
        logger.error("user store %s failed: %s", action, exc)
        raise PersistenceError(f"user store {action} failed") from exc

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        try:
            return self.session.get(User, user_id)
        except SQLAlchemyError as exc:
            self._fail("find_user_by_id", exc)

    def find_identity(self, user_id: str) -> Optional[User]:
        """User for request context; the password hash is left unloaded."""
        if not user_id:
            return None
        try:
            return (
                self.session.query(User)
                .options(defer(User.password_hash))
                .filter(User.id == user_id)
                .first()
            )
        except SQLAlchemyError as exc:
            self._fail("find_identity", exc)

    def find_user_by_email(self, email: str) -> Optional[User]:
        try:
            return self.session.query(User).filter(User.email == normalize_email(email)).first()
        except SQLAlchemyError as exc:
            self._fail("find_user_by_email", exc)

    def verify_password(self, user: Optional[User], plaintext: str) -> bool:
        return verify_password(plaintext, user.password_hash if user else None)

    def authenticate(self, email: str, plaintext: str) -> Optional[User]:
        """User for the credentials, or None. Unknown emails still pay for a hash check."""
        user = self.find_user_by_email(email)
        if not self.verify_password(user, plaintext):
            return None
        return user

    def create_user(self, email: str, password: str, name: str | None = None,
                    role: str = DEFAULT_ROLE) -> User:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        if self.find_user_by_email(email):
            raise EmailAlreadyRegistered("Email already registered")
        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            name=name,
            role=role,
        )
        self.session.add(user)
        try:
            self._commit("create_user")
        except IntegrityError as exc:
            raise EmailAlreadyRegistered("Email already registered") from exc
        return user

    def set_password(self, user: User, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        self._commit("set_password")

    def set_role(self, user: User, role: str) -> User:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        user.role = role
        self._commit("set_role")
        return user

    def list_users(self, page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        try:
            query = self.session.query(User)
            total = query.count()
            rows = query.order_by(User.email.asc()).offset((page - 1) * limit).limit(limit).all()
        except SQLAlchemyError as exc:
            self._fail("list_users", exc)
        return rows, total
