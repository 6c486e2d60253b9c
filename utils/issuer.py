"""
Token issuer: mints access/refresh pairs and drives the refresh lifecycle.

- issue():       after a successful login, one new persisted refresh token
- refresh():     rotation; presenting a revoked token revokes the whole family
- logout():      revoke one refresh token
- logout_all():  revoke every refresh token of a user
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from models.token_store import (
    LOGOUT,
    LOGOUT_ALL,
    REUSE_DETECTED,
    RefreshTokenStore,
)
from models.user_store import UserStore
from utils.exceptions import (
    AlreadyRevoked,
    RefreshTokenExpired,
    TokenNotFound,
    UserNotFound,
)
from utils.security import create_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


class TokenIssuer:
    def __init__(
        self,
        tokens: RefreshTokenStore,
        users: UserStore,
        secret: str,
        access_expires: timedelta = timedelta(minutes=15),
        algorithm: str = "HS256",
        issuer: str = "rnc-session-api",
    ):
        self.tokens = tokens
        self.users = users
        self._secret = secret
        self.access_expires = access_expires
        self.algorithm = algorithm
        self.issuer = issuer

    def access_token_for(self, user) -> str:
        return create_access_token(
            subject=user.id,
            role=user.role,
            secret=self._secret,
            expires=self.access_expires,
            algorithm=self.algorithm,
            issuer=self.issuer,
        )

    def _pair(self, user, refresh_value: str) -> TokenPair:
        return TokenPair(
            access_token=self.access_token_for(user),
            refresh_token=refresh_value,
            expires_in=int(self.access_expires.total_seconds()),
        )

    def issue(self, user, ip_address: str | None = None, user_agent: str | None = None) -> TokenPair:
        # create() commits before returning, or raises PersistenceError
        record = self.tokens.create(user.id, ip_address=ip_address, user_agent=user_agent)
        logger.info("issued refresh token %s for user %s from %s", record.masked, user.id, ip_address)
        return self._pair(user, record.token)

    def refresh(self, token_value: str, ip_address: str | None = None,
                user_agent: str | None = None) -> TokenPair:
        record = self.tokens.find_by_token(token_value)
        if record is None:
            logger.warning("refresh with unknown token from %s", ip_address)
            raise TokenNotFound("Unknown refresh token")

        if record.revoked:
            self._reuse_detected(record.user_id, record.masked, ip_address)

        if record.is_expired():
            logger.warning("refresh with expired token %s for user %s", record.masked, record.user_id)
            raise RefreshTokenExpired("Refresh token expired", user_id=record.user_id)

        user = self.users.find_user_by_id(record.user_id)
        if user is None:
            logger.warning("refresh token %s belongs to deleted user %s", record.masked, record.user_id)
            raise UserNotFound("Token owner no longer exists", user_id=record.user_id)

        try:
            successor = self.tokens.rotate(record, ip_address=ip_address, user_agent=user_agent)
        except AlreadyRevoked:
            # Lost the race against another rotation of the same token
            self._reuse_detected(record.user_id, record.masked, ip_address)
        return self._pair(user, successor.token)

    def _reuse_detected(self, user_id: str, masked: str, ip_address: str | None):
        revoked = self.tokens.revoke_all_for_user(user_id, reason=REUSE_DETECTED)
        logger.error(
            "refresh token reuse detected: token %s user %s ip %s; revoked %d active token(s)",
            masked, user_id, ip_address, revoked,
        )
        raise AlreadyRevoked("Refresh token reuse detected", user_id=user_id, revoked=revoked)

    def logout(self, token_value: str) -> bool:
        """Revoke one refresh token. Unknown or already revoked tokens are a no-op."""
        record = self.tokens.find_by_token(token_value)
        if record is None:
            return False
        revoked = self.tokens.revoke(record, reason=LOGOUT)
        if revoked:
            logger.info("logout: revoked refresh token %s for user %s", record.masked, record.user_id)
        return revoked

    def logout_all(self, user_id: str, reason: str = LOGOUT_ALL) -> int:
        return self.tokens.revoke_all_for_user(user_id, reason=reason)
