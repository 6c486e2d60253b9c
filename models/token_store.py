"""
Refresh token store: persistence and lifecycle queries for RefreshToken.

Every state change is a conditional UPDATE that only matches a token which
is still active at write time. Two requests racing to rotate or revoke the
same token therefore serialize in the database: one UPDATE matches a row,
the other matches none and is told the token was already revoked.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from models.base_model import utc_now
from models.refresh_token import RefreshToken
from utils.exceptions import (
    AlreadyRevoked,
    PersistenceError,
    RefreshTokenExpired,
    TokenNotFound,
)
from utils.security import generate_refresh_token

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)

# revocation_reason values
ROTATED = "rotated"
LOGOUT = "logout"
LOGOUT_ALL = "logout_all"
PASSWORD_CHANGE = "password_change"
REUSE_DETECTED = "reuse_detected"
ADMIN = "admin"


class RefreshTokenStore:
    def __init__(self, session_getter: Callable[[], Session], ttl: timedelta = DEFAULT_TTL):
        self._session_getter = session_getter
        self.ttl = ttl

    @property
    def session(self) -> Session:
        return self._session_getter()

    def _fail(self, action: str, exc: SQLAlchemyError):
        self.session.rollback()
        logger.error("refresh token store %s failed: %s", action, exc)
        raise PersistenceError(f"refresh token store {action} failed") from exc

    def _build(self, user_id: str, ip_address: str | None, user_agent: str | None,
               now: datetime) -> RefreshToken:
        return RefreshToken(
            token=generate_refresh_token(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
        )

    @staticmethod
    def _sync(record: RefreshToken, values: dict):
        """Mirror a committed UPDATE onto an in-memory record without dirtying it."""
        for key, value in values.items():
            set_committed_value(record, key, value)

    @staticmethod
    def is_active(record: RefreshToken, now: datetime | None = None) -> bool:
        return record.is_active(now)

    def find_by_token(self, value: str) -> Optional[RefreshToken]:
        if not value:
            return None
        try:
            return self.session.query(RefreshToken).filter(RefreshToken.token == value).first()
        except SQLAlchemyError as exc:
            self._fail("find_by_token", exc)

    def create(self, user_id: str, ip_address: str | None = None,
               user_agent: str | None = None) -> RefreshToken:
        """Persist a new token for the user; only returns once it is committed."""
        record = self._build(user_id, ip_address, user_agent, utc_now())
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fail("create", exc)
        return record

    def rotate(self, old: RefreshToken, ip_address: str | None = None,
               user_agent: str | None = None) -> RefreshToken:
        """
        Revoke `old` and persist its successor in one transaction.

        Raises AlreadyRevoked if `old` was revoked (by an earlier rotation,
        a logout or a concurrent request) and RefreshTokenExpired if it lapsed.
        """
        now = utc_now()
        successor = self._build(old.user_id, ip_address, user_agent, now)
        changes = {
            "revoked": True,
            "revoked_at": now,
            "revocation_reason": ROTATED,
            "replaced_by_token": successor.token,
        }
        session = self.session
        try:
            matched = (
                session.query(RefreshToken)
                .filter(
                    RefreshToken.id == old.id,
                    RefreshToken.revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
                .update(changes, synchronize_session=False)
            )
            if matched != 1:
                session.rollback()
                self._raise_inactive(old.id, now)
            session.add(successor)
            session.commit()
        except SQLAlchemyError as exc:
            self._fail("rotate", exc)
        self._sync(old, changes)
        logger.info("rotated refresh token %s -> %s for user %s", old.masked, successor.masked, old.user_id)
        return successor

    def _raise_inactive(self, record_id: str, now: datetime):
        current = self.session.get(RefreshToken, record_id)
        if current is None:
            raise TokenNotFound("Refresh token record vanished during rotation")
        if not current.revoked and current.is_expired(now):
            raise RefreshTokenExpired("Refresh token expired", user_id=current.user_id)
        raise AlreadyRevoked(
            "Refresh token already revoked",
            user_id=current.user_id,
            replaced_by=current.replaced_by_token,
        )

    def revoke(self, record: RefreshToken, reason: str = LOGOUT) -> bool:
        """Revoke a single token. False when it was already revoked."""
        changes = {"revoked": True, "revoked_at": utc_now(), "revocation_reason": reason}
        try:
            matched = (
                self.session.query(RefreshToken)
                .filter(RefreshToken.id == record.id, RefreshToken.revoked.is_(False))
                .update(changes, synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fail("revoke", exc)
        if matched == 1:
            self._sync(record, changes)
        return matched == 1

    def revoke_all_for_user(self, user_id: str, reason: str = LOGOUT_ALL) -> int:
        """Revoke every active token of the user. Returns how many were revoked."""
        now = utc_now()
        session = self.session
        try:
            count = (
                session.query(RefreshToken)
                .filter(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
                .update(
                    {"revoked": True, "revoked_at": now, "revocation_reason": reason},
                    synchronize_session=False,
                )
            )
            session.commit()
        except SQLAlchemyError as exc:
            self._fail("revoke_all_for_user", exc)
        # reload any of the user's tokens this session already holds
        for obj in list(session.identity_map.values()):
            if isinstance(obj, RefreshToken) and obj.__dict__.get("user_id") == user_id:
                session.expire(obj)
        logger.info("revoked %d refresh token(s) for user %s (%s)", count, user_id, reason)
        return count

    def list_active_for_user(self, user_id: str) -> List[RefreshToken]:
        now = utc_now()
        try:
            return (
                self.session.query(RefreshToken)
                .filter(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
                .order_by(RefreshToken.created_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            self._fail("list_active_for_user", exc)

    def chain(self, record: RefreshToken) -> List[RefreshToken]:
        """`record` followed by every successor reached through replaced_by_token."""
        links = [record]
        seen = {record.token}
        current = record
        while current.replaced_by_token and current.replaced_by_token not in seen:
            current = self.find_by_token(current.replaced_by_token)
            if current is None:
                break
            seen.add(current.token)
            links.append(current)
        return links
