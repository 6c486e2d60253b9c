"""
RefreshToken model: persisted refresh tokens so they can be rotated and revoked.
Fields:
- token (unique, opaque random value handed to the client)
- user_id (String(36)) - users.id, indexed; no FK so tokens outlive their user row
- expires_at, created_at
- revoked, revoked_at, revocation_reason
- replaced_by_token (next link in the rotation chain)
- user_agent, ip_address (provenance)

Records are never deleted; revocation only flips revoked/revoked_at/replaced_by_token.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, String, Boolean, DateTime, Index

from models.base_model import BaseModel, Base, utc_now


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked"),
    )

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revocation_reason = Column(String(32), nullable=True)
    replaced_by_token = Column(String(128), nullable=True)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("revoked", False)
        super().__init__(*args, **kwargs)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return not self.revoked and not self.is_expired(now)

    @property
    def masked(self) -> str:
        """Token prefix safe to show in logs and session listings."""
        return f"{self.token[:8]}..."

    def __repr__(self):
        return f"<RefreshToken {self.masked} user={self.user_id} revoked={self.revoked}>"
