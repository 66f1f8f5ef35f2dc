"""SQLAlchemy ORM 모델 패키지 — 모든 도메인 모델의 중앙 임포트 지점.

SQLAlchemy ORM models package — Central import point for all domain models.
Importing from this package ensures all models are registered with the
SQLAlchemy metadata, which is required for Alembic migrations and
relationship resolution.

Modules:
    user: 사용자 (User accounts, the credential collaborator)
    device: 기기, 기기-사용자 연결, 푸시 토큰 (Devices, device/user links, push tokens)
    token: 리프레시 토큰 (Refresh tokens)
"""

from petauth.models.user import User
from petauth.models.device import Device, DevicePushToken, DeviceUserLink
from petauth.models.token import RefreshToken

__all__ = [
    "User",
    "Device", "DeviceUserLink", "DevicePushToken",
    "RefreshToken",
]
