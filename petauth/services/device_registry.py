"""기기 레지스트리 — 기기-사용자 연결, 신뢰 신호, 갱신 허용 판단.

Device Registry — Tracks device/user associations and coarse trust signals,
and gates session refresh.

Link state machine per (device, user):
    unlinked -> active <-> inactive      (logout deactivates, login reactivates)
    device blocked                       (terminal until an admin unblocks)

Blocking or revoking a device revokes every refresh token bound to it in the
caller's transaction, so the router's single commit covers both.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.config import SessionPolicy
from petauth.models.device import PLATFORMS, Device, DeviceUserLink
from petauth.repositories.device_repository import DeviceRepository, device_repository
from petauth.repositories.refresh_token_repository import RefreshTokenStore
from petauth.utils.clock import utcnow
from petauth.utils.exceptions import (
    DeviceUnauthorizedError,
    InvalidAppSignatureError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

# 클라이언트가 갱신할 수 있는 기기 정보 컬럼 — Client-reported columns
DEVICE_INFO_FIELDS: tuple[str, ...] = (
    "platform",
    "os_version",
    "app_version",
    "device_model",
    "device_name",
    "manufacturer",
    "is_tablet",
    "user_agent",
    "device_fingerprint",
    "is_jailbroken",
    "has_biometric",
    "biometric_type",
    "is_biometric_enabled",
)

# 신뢰 점수 가중치 — Trust score weights
TRUST_BASE: int = 50
TRUST_FREQUENT_LOGIN_BONUS: int = 10
TRUST_FREQUENT_LOGIN_AFTER: int = 10
TRUST_BIOMETRIC_BONUS: int = 15
TRUST_NOT_JAILBROKEN_BONUS: int = 10
TRUST_SIGNATURE_MISMATCH_PENALTY: int = 20


def calculate_trust_score(device: Device) -> int:
    """기기의 신뢰 점수를 계산합니다 (0~100).

    Base 50, +10 after more than 10 logins, +15 with biometrics enabled,
    +10 when not jailbroken, -20 per app signature mismatch; clamped to
    0..100.
    """
    score: int = TRUST_BASE
    if (device.login_count or 0) > TRUST_FREQUENT_LOGIN_AFTER:
        score += TRUST_FREQUENT_LOGIN_BONUS
    if device.is_biometric_enabled:
        score += TRUST_BIOMETRIC_BONUS
    if not device.is_jailbroken:
        score += TRUST_NOT_JAILBROKEN_BONUS
    score -= TRUST_SIGNATURE_MISMATCH_PENALTY * (device.signature_mismatches or 0)
    return max(0, min(100, score))


@dataclass(frozen=True)
class DeviceSummary:
    """사용자 기준 기기 요약 (A device as seen by one of its users)."""

    device: Device
    link: DeviceUserLink
    active_sessions: int


class DeviceRegistry:
    """기기 등록, 연결, 차단을 처리하는 서비스.

    Service handling device registration, user linking and blocking.

    Args:
        policy: 세션 정책 (Session policy)
        store: 리프레시 토큰 저장소 — 차단 시 토큰 폐기용
               (Refresh token store, used for the block/revoke cascade)
        repository: 기기 레포지토리 (Device repository)
    """

    def __init__(
        self,
        policy: SessionPolicy,
        store: RefreshTokenStore,
        repository: DeviceRepository = device_repository,
    ) -> None:
        self.policy: SessionPolicy = policy
        self.store: RefreshTokenStore = store
        self.repository: DeviceRepository = repository

    def validate_app_signature(self, platform: str, app_signature: str | None) -> bool:
        """플랫폼별 허용 목록으로 앱 서명을 검증합니다.

        Check a signature against the platform's allow-list. Platforms without
        a configured list (e.g. web) do not carry a signature.
        """
        allowed: tuple[str, ...] | None = self.policy.app_signatures.get(platform)
        if allowed is None:
            return True
        return app_signature is not None and app_signature in allowed

    def _descriptive_values(self, device_info: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {
            key: value
            for key, value in device_info.items()
            if key in DEVICE_INFO_FIELDS and value is not None
        }
        if values.get("platform") not in PLATFORMS:
            values.pop("platform", None)
        return values

    def _apply_trust(self, device: Device) -> None:
        score: int = calculate_trust_score(device)
        if score != device.trust_score:
            logger.info("Trust score for device %s: %d -> %d", device.device_id, device.trust_score, score)
            device.trust_score = score

    def _check_signature(self, device: Device, app_signature: str | None, allowed: bool) -> None:
        # 허용되지 않았거나 저장된 서명과 다름 — Not allowed, or differs from the stored one
        differs: bool = (
            app_signature is not None
            and device.app_signature is not None
            and app_signature != device.app_signature
        )
        if not allowed or differs:
            device.signature_mismatches = (device.signature_mismatches or 0) + 1
            logger.warning("App signature mismatch on device %s", device.device_id)
        if device.app_signature is None and app_signature is not None and allowed:
            device.app_signature = app_signature

    async def register(
        self,
        db: AsyncSession,
        device_id: str | None,
        device_info: dict[str, Any],
        app_signature: str | None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
    ) -> Device:
        """기기를 등록하거나 기존 기기의 정보를 갱신합니다.

        Register a device, minting a 128-bit id when none is given. An
        existing device has its info refreshed.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            device_id: 클라이언트 기기 ID, 없으면 생성 (Client device id, minted when None)
            device_info: 기기 정보 (Device info, snake_case keys)
            app_signature: 앱 서명 (App signature)
            user_id: 함께 연결할 사용자 (User to link right away, optional)
            ip_address: 요청 IP (Client IP)

        Returns:
            Device: 등록된 기기 (The registered device)

        Raises:
            InvalidAppSignatureError: 허용되지 않은 서명이며 검증이 활성화됨
                                      (Signature not allowed and enforcement is on)
            DeviceUnauthorizedError: 기존 기기가 차단/비활성 상태 (Existing device is blocked or inactive)
        """
        device_id = device_id or secrets.token_hex(16)
        values: dict[str, Any] = self._descriptive_values(device_info)
        platform: str = values.get("platform", "other")

        allowed: bool = self.validate_app_signature(platform, app_signature)
        if not allowed and self.policy.enforce_app_signature:
            logger.warning("Rejected app signature for device %s (%s)", device_id, platform)
            raise InvalidAppSignatureError()

        device, created = await self.repository.create_if_absent(db, {
            **values,
            "device_id": device_id,
            "app_signature": app_signature if allowed else None,
            "signature_mismatches": 0 if allowed else 1,
            "last_active_ip": ip_address,
            "last_active_at": utcnow(),
        })
        if created:
            logger.info("Registered device %s (%s)", device_id, platform)
        else:
            if device.is_blocked or not device.is_active:
                logger.warning("Rejected registration on blocked device %s", device_id)
                raise DeviceUnauthorizedError("Device is blocked or inactive")
            for key, value in values.items():
                setattr(device, key, value)
            if ip_address:
                device.last_active_ip = ip_address
            self._check_signature(device, app_signature, allowed)

        self._apply_trust(device)
        await db.flush()

        if user_id is not None:
            await self.link_user(db, device_id, user_id, ip_address)
        return device

    async def ensure_device(
        self,
        db: AsyncSession,
        device_id: str,
        device_info: dict[str, Any],
        app_signature: str | None = None,
        ip_address: str | None = None,
    ) -> Device:
        """로그인 경로 — 처음 보는 기기는 등록, 기존 기기는 정보 병합.

        Login path: register an unseen device, otherwise merge the reported
        info into the existing record.
        """
        device: Device | None = await self.repository.get_by_device_id(db, device_id)
        if device is None:
            return await self.register(db, device_id, device_info, app_signature, ip_address=ip_address)

        for key, value in self._descriptive_values(device_info).items():
            setattr(device, key, value)
        if ip_address:
            device.last_active_ip = ip_address
        if app_signature is not None:
            allowed: bool = self.validate_app_signature(device.platform, app_signature)
            self._check_signature(device, app_signature, allowed)
        self._apply_trust(device)
        await db.flush()
        return device

    async def link_user(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
        ip_address: str | None = None,
    ) -> None:
        """사용자를 기기에 연결하거나 비활성 연결을 재활성화합니다.

        Add or reactivate the user's link, then bump the device's login
        statistics.
        """
        await self.repository.upsert_link(db, device_id, user_id)
        await self.repository.record_login(db, device_id, ip_address)

        device: Device | None = await self.repository.get_by_device_id(db, device_id)
        if device is not None:
            self._apply_trust(device)
            await db.flush()

    async def unlink_user(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
    ) -> bool:
        """연결을 비활성화합니다 — 로그아웃. 기록은 유지.

        Deactivate the user's link on logout without deleting history.

        Returns:
            bool: 활성 연결이 있었는지 여부 (Whether an active link was deactivated)
        """
        changed: int = await self.repository.deactivate_link(db, device_id, user_id)
        await db.execute(
            update(Device)
            .where(Device.device_id == device_id)
            .values(last_logout_at=utcnow())
        )
        await db.flush()
        return changed > 0

    async def is_user_authorized_on_device(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
        device: Device | None = None,
    ) -> bool:
        """사용자가 기기에서 인증 가능한지 확인합니다.

        True iff the user has an active link, or the device predates the
        link table (no links at all) and its legacy owner is the user.
        """
        link: DeviceUserLink | None = await self.repository.get_link(db, device_id, user_id)
        if link is not None:
            return link.is_active

        if device is None:
            device = await self.repository.get_by_device_id(db, device_id)
        if device is None or device.legacy_user_id is None:
            return False
        # 연결이 하나라도 생기면 레거시 경로는 사용하지 않음 — Legacy path only before any link exists
        return device.legacy_user_id == user_id and await self.repository.count_links(db, device_id) == 0

    async def check_refresh_allowed(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
    ) -> Device:
        """세션 갱신 허용 여부를 확인합니다.

        Gate a refresh on the device's state and the user's authorization.

        Raises:
            DeviceUnauthorizedError: 미등록, 차단, 비활성, 미신뢰, 미연결
                                     (Unknown, blocked, inactive, untrusted, or not linked)
        """
        device: Device | None = await self.repository.get_by_device_id(db, device_id)
        if device is None:
            raise DeviceUnauthorizedError("Device is not registered")
        if device.is_blocked or not device.is_active:
            raise DeviceUnauthorizedError("Device is blocked or inactive")
        if device.trust_score < self.policy.trust_threshold:
            logger.warning("Refresh denied on untrusted device %s (score %d)", device_id, device.trust_score)
            raise DeviceUnauthorizedError("Device is not trusted")
        if not await self.is_user_authorized_on_device(db, device_id, user_id, device):
            raise DeviceUnauthorizedError()
        return device

    async def _get_or_404(self, db: AsyncSession, device_id: str) -> Device:
        device: Device | None = await self.repository.get_by_device_id(db, device_id)
        if device is None:
            raise NotFoundError("Device not found")
        return device

    async def block(
        self,
        db: AsyncSession,
        device_id: str,
        reason: str,
    ) -> int:
        """기기를 차단하고 모든 리프레시 토큰을 폐기합니다.

        Block the device and revoke every refresh token bound to it.

        Returns:
            int: 폐기된 토큰 수 (Number of tokens revoked)

        Raises:
            NotFoundError: 기기 없음 (Unknown device)
        """
        device: Device = await self._get_or_404(db, device_id)
        device.is_active = False
        device.is_blocked = True
        device.blocked_reason = reason
        device.blocked_at = utcnow()
        await db.flush()

        revoked: int = await self.store.revoke_all_for_device(db, device_id, "device_blocked")
        logger.warning("Blocked device %s: %s", device_id, reason)
        return revoked

    async def revoke_device(self, db: AsyncSession, device_id: str) -> int:
        """기기를 비활성화하고 모든 리프레시 토큰을 폐기합니다.

        Deactivate the device and revoke every refresh token bound to it.
        """
        device: Device = await self._get_or_404(db, device_id)
        device.is_active = False
        await db.flush()
        return await self.store.revoke_all_for_device(db, device_id, "device_revoked")

    async def unblock(self, db: AsyncSession, device_id: str) -> Device:
        """관리자 차단 해제 (Admin action restoring a blocked device)."""
        device: Device = await self._get_or_404(db, device_id)
        device.is_active = True
        device.is_blocked = False
        device.blocked_reason = None
        device.blocked_at = None
        self._apply_trust(device)
        await db.flush()
        logger.info("Unblocked device %s", device_id)
        return device

    async def list_active_devices(
        self,
        db: AsyncSession,
        user_id: UUID,
    ) -> list[DeviceSummary]:
        """사용자가 활성 연결을 가진 기기와 기기별 활성 세션 수.

        Devices the user is actively linked to, with the count of live
        refresh tokens on each.
        """
        summaries: list[DeviceSummary] = []
        for device, link in await self.repository.list_active_for_user(db, user_id):
            sessions: int = await self.store.count_active(db, user_id, device.device_id)
            summaries.append(DeviceSummary(device=device, link=link, active_sessions=sessions))
        return summaries

    async def add_push_token(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
        token: str,
        token_type: str = "fcm",
    ) -> None:
        """기기에 푸시 토큰을 등록합니다.

        Register a push token on a device the user is authorized on.

        Raises:
            DeviceUnauthorizedError: 사용자가 기기에 연결되지 않음 (User not linked to the device)
        """
        if not await self.is_user_authorized_on_device(db, device_id, user_id):
            raise DeviceUnauthorizedError()
        await self.repository.upsert_push_token(db, device_id, token, token_type)
