"""기기 레지스트리 SQLAlchemy ORM 모델 정의.

Device registry SQLAlchemy ORM model definitions.
A device is one client installation; it may be shared by several user
accounts (e.g. a family tablet), which is modelled as a many-to-many
link table rather than a single owner column.

Tables:
    - devices: 기기 정보 및 신뢰 메타데이터 (Device info and trust metadata)
    - device_user_links: 기기-사용자 연결 (Device/user links, per-user activation)
    - device_push_tokens: 푸시 토큰 (FCM/APNs push tokens per device)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from petauth.database import Base

PLATFORMS: tuple[str, ...] = ("ios", "android", "web", "other")


class Device(Base):
    """기기 모델 — 물리적 클라이언트 설치 단위.

    Device model — One physical client installation.
    Never hard-deleted; disabled through `is_active` / `is_blocked`.

    Attributes:
        device_id: 불투명 기기 식별자 (Opaque device identifier, unique)
        platform: 플랫폼 (ios / android / web / other)
        app_signature: 등록 시 제출된 앱 서명 (App signature presented at registration)
        trust_score: 신뢰 점수 0~100 (Informational trust score)
        signature_mismatches: 앱 서명 불일치 횟수 (App signature mismatch count)
        is_active: 기기 활성 상태 (Device-wide kill switch)
        is_blocked: 관리자 차단 여부 (Admin block, terminal until unblocked)
        legacy_user_id: 단일 소유자 시절의 사용자 ID, 마이그레이션된 기기에만 존재
                        (Single owner from the pre-link shape; migrated devices only)
    """

    __tablename__ = "devices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    device_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)

    # 기기 정보 — Descriptive device info, never security-enforced
    platform: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    os_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    app_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_tablet: Mapped[bool] = mapped_column(Boolean, default=False)
    last_active_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # 신뢰 신호 — Trust signals
    app_signature: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_fingerprint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_jailbroken: Mapped[bool] = mapped_column(Boolean, default=False)
    has_biometric: Mapped[bool] = mapped_column(Boolean, default=False)
    biometric_type: Mapped[str] = mapped_column(String(20), default="none")
    is_biometric_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    trust_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    signature_mismatches: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # 상태 — Device-wide switches
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    blocked_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    blocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # 활동 — Activity
    login_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_logout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    legacy_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # 관계 — Relationships
    user_links = relationship("DeviceUserLink", back_populates="device", cascade="all, delete-orphan", passive_deletes=True)
    push_tokens = relationship("DevicePushToken", back_populates="device", cascade="all, delete-orphan", passive_deletes=True)


class DeviceUserLink(Base):
    """기기-사용자 연결 — 공유 기기에서 사용자별 활성/비활성.

    Device/user link. Logout deactivates the link, the next login
    reactivates it; history is never deleted.

    Constraints:
        uq_device_user_link: 기기당 사용자 연결 하나 (One link per device and user)
    """

    __tablename__ = "device_user_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    device_id: Mapped[str] = mapped_column(String(128), ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("device_id", "user_id", name="uq_device_user_link"),
    )

    device = relationship("Device", back_populates="user_links")
    user = relationship("User", back_populates="device_links")


class DevicePushToken(Base):
    """푸시 토큰 — FCM/APNs push token registered by a device."""

    __tablename__ = "device_push_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    device_id: Mapped[str] = mapped_column(String(128), ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(512), nullable=False)
    token_type: Mapped[str] = mapped_column(String(10), default="fcm", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("device_id", "token", name="uq_device_push_token"),
    )

    device = relationship("Device", back_populates="push_tokens")
