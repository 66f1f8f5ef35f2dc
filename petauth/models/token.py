"""리프레시 토큰 모델 — 불투명 리프레시 토큰 저장.

Refresh Token model — Stores opaque refresh tokens grouped into rotation
families. Only the SHA-256 digest of the token is persisted; the raw value is
the bearer secret held by the client.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from petauth.database import Base
from petauth.utils.clock import as_utc, utcnow


class RefreshToken(Base):
    """리프레시 토큰 테이블.

    Refresh token table for long-lived, revocable sessions bound to a
    (user, device) pair.

    Attributes:
        token_hash: 토큰 SHA-256 해시 (SHA-256 digest of the opaque token, unique)
        user_id: 소유 사용자 ID (Owner user UUID)
        user_type: 발급 시 역할 (Role at issuance)
        device_id: 바인딩된 기기 ID (Bound device identifier)
        device_info: 발급 시 기기 정보 스냅샷 (Device info snapshot)
        token_family: 회전 패밀리 (Rotation family shared by successive tokens)
        usage_count: 갱신에 사용된 횟수 (Times used to refresh)
        expires_at: 만료 일시 (Expiration timestamp)
        is_revoked: 폐기 여부 (Revocation flag)
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_type: Mapped[str] = mapped_column(String(20), nullable=False)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    device_info: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    token_family: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # 사용 추적 — Usage tracking
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # 폐기 — Revocation
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_refresh_tokens_user_device", "user_id", "device_id"),
    )

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    def is_expired(self) -> bool:
        return utcnow() >= as_utc(self.expires_at)

    def is_valid(self) -> bool:
        """사용 가능 여부 — not revoked and not yet expired."""
        return not self.is_revoked and not self.is_expired()
