from __future__ import annotations
from functools import wraps
import logging

from flask import request, g

from models.user_store import UserStore
from utils.exceptions import Forbidden, MissingToken, RateLimited, Unauthorized, UserNotFound
from utils.rate_limiter import RateLimiter
from utils.roles import RolePredicate
from utils.security import decode_access_token

logger = logging.getLogger(__name__)


def bearer_token() -> str:
    """Access token from `Authorization: Bearer <token>` or MissingToken."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise MissingToken("Missing or malformed Authorization header")
    return token


class SessionGuard:
    """
    Session middleware. Built once per app with the identity store injected,
    then used as `@guard.jwt_required()` on protected views.
    """

    def __init__(self, users: UserStore, secret: str, algorithm: str = "HS256",
                 issuer: str = "rnc-session-api"):
        self.users = users
        self._secret = secret
        self.algorithm = algorithm
        self.issuer = issuer

    def authenticate(self) -> None:
        token = bearer_token()
        decoded = decode_access_token(token, self._secret, self.algorithm, self.issuer)

        user_id = decoded.get("sub")
        user = self.users.find_identity(user_id)
        if not user:
            # identity deleted after the token was issued
            raise UserNotFound("Access token subject no longer exists", user_id=user_id)

        g.current_user = user
        # stored role, not the claim: demotions apply before the token expires
        g.current_user_role = user.role
        g.current_token_jti = decoded.get("jti")

    def jwt_required(self):
        def decorator(fn):
            @wraps(fn)
            def wrapper(*args, **kwargs):
                self.authenticate()
                return fn(*args, **kwargs)

            return wrapper

        return decorator


def roles_required(predicate: RolePredicate):
    """
    Role gate. Must sit below `guard.jwt_required()` so the identity is
    attached first; without one it fails closed with 401.
    A failing predicate is a 403 that does not name the acceptable roles.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise Unauthorized("Role gate reached without an authenticated identity")

            role = getattr(g, "current_user_role", None)
            if not predicate(role):
                logger.warning(
                    "forbidden: user %s with role %s failed %s on %s",
                    user.id, role, predicate.description, request.path,
                )
                raise Forbidden(f"{role} does not satisfy {predicate.description}")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def rate_limited(limiter: RateLimiter, limit_type: str):
    """Reject the request with 429 once the client address exhausts its window."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            client = request.remote_addr or "unknown"
            allowed, retry_after = limiter.is_allowed(limit_type, client)
            if not allowed:
                raise RateLimited(
                    f"{limit_type} limit exceeded for {client}",
                    retry_after=retry_after,
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator
