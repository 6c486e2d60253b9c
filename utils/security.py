"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT access token creation/verification via PyJWT
- Opaque refresh token values and JTI generation
"""
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from utils.exceptions import InvalidSignature, TokenExpired

ph = PasswordHasher()

# 160-bit refresh token values, hex encoded
REFRESH_TOKEN_BYTES = 20

# Verified against when the email is unknown so both failure paths cost the same.
_DUMMY_HASH = ph.hash("no-such-user-placeholder-password")


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash or _DUMMY_HASH, password) and password_hash is not None
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    subject: str,
    role: str,
    secret: str,
    expires: timedelta,
    algorithm: str = "HS256",
    issuer: str = "rnc-session-api",
    jti: str | None = None,
) -> str:
    """Signed short-lived access token carrying the subject id and role."""
    now = _now()
    payload = {
        "iss": issuer,
        "sub": str(subject),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + expires).timestamp()),
        "type": "access",
        "jti": jti or generate_jti(),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    issuer: str = "rnc-session-api",
) -> Dict[str, Any]:
    """
    Decode and validate an access token.
    Raises TokenExpired for a lapsed token and InvalidSignature for anything
    else that fails verification (bad signature, wrong issuer, wrong type).
    """
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            issuer=issuer,
            options={"require": ["exp", "sub", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Access token expired")
    except jwt.InvalidTokenError as exc:
        raise InvalidSignature(f"Invalid token: {exc}")

    if decoded.get("type") != "access":
        raise InvalidSignature("Wrong token type")
    return decoded
