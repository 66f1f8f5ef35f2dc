"""사용자 SQLAlchemy ORM 모델 정의.

User SQLAlchemy ORM model definition.
The user store is a collaborator of the session core: it supplies identity,
role, password hash, and lockout state. Password hashing lives in
`petauth.utils.password`.

Tables:
    - users: 사용자 계정 (User accounts with lockout tracking)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from petauth.database import Base
from petauth.utils.clock import as_utc, utcnow

# 역할 이름 — Role names carried in tokens
ROLE_PET_OWNER: str = "petOwner"
ROLE_ADMIN: str = "admin"


class User(Base):
    """사용자 모델 — 반려동물 보호자 및 관리자 계정.

    User model — Pet owner and admin accounts.
    Email is globally unique and stored lower-cased.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        email: 로그인 이메일 (Login email, unique)
        name: 표시 이름 (Display name)
        phone: 전화번호 (Phone number, optional)
        password_hash: bcrypt 해시된 비밀번호 (bcrypt-hashed password)
        role: 역할 (petOwner or admin)
        is_active: 활성 상태 (Active status, soft-delete pattern)
        failed_login_attempts: 연속 로그인 실패 횟수 (Consecutive failed logins)
        lockout_until: 잠금 해제 시각 (Lockout end, None when unlocked)
        last_login_at: 마지막 로그인 일시 (Last successful login)

    Relationships:
        refresh_tokens: 리프레시 토큰 목록 (Refresh tokens, cascade delete)
        device_links: 기기 연결 목록 (Device links, cascade delete)
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 로그인 이메일 — 소문자로 저장 (Stored lower-cased)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # 비밀번호 해시 — bcrypt hashed password (평문 저장 금지, never store plaintext)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_PET_OWNER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lockout_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # 관계 — Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    device_links = relationship("DeviceUserLink", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    def is_locked(self) -> bool:
        """잠금 여부 — True while `lockout_until` lies in the future."""
        lockout_until = as_utc(self.lockout_until)
        return lockout_until is not None and lockout_until > utcnow()
