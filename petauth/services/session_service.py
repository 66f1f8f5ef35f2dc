"""세션 서비스 — 로그인, 회원가입, 갱신, 로그아웃, 검증 오케스트레이션.

Session Service — Orchestrates login, registration, refresh, logout and
validation on top of the TokenIssuer, RefreshTokenStore and DeviceRegistry.

Services only flush; routers own the transaction and commit. Errors are
SessionError subclasses, rendered at the API boundary.
"""

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.config import SessionPolicy
from petauth.models.device import Device
from petauth.models.user import ROLE_PET_OWNER, User
from petauth.repositories.refresh_token_repository import RefreshTokenStore
from petauth.repositories.user_repository import UserRepository, user_repository
from petauth.services.device_registry import DeviceRegistry
from petauth.services.token_issuer import RefreshTokenData, TokenIssuer, TokenPair
from petauth.utils.clock import utcnow
from petauth.utils.exceptions import (
    AccountLockedError,
    DeviceMismatchError,
    DeviceUnauthorizedError,
    DuplicateError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    UserNotFoundError,
)
from petauth.utils.password import hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """로그인/회원가입 결과 (Outcome of a login or registration)."""

    user: User
    device: Device
    tokens: TokenPair


class SessionService:
    """세션 흐름을 처리하는 서비스.

    Service handling the session flows. Built once at startup with the
    shared policy; holds the components it orchestrates.

    Args:
        policy: 세션 정책 (Session policy)
        store: 리프레시 토큰 저장소 (Refresh token store)
        issuer: 토큰 발급기 (Token issuer)
        devices: 기기 레지스트리 (Device registry)
        users: 사용자 레포지토리 (User repository)
    """

    def __init__(
        self,
        policy: SessionPolicy,
        store: RefreshTokenStore,
        issuer: TokenIssuer,
        devices: DeviceRegistry,
        users: UserRepository = user_repository,
    ) -> None:
        self.policy: SessionPolicy = policy
        self.store: RefreshTokenStore = store
        self.issuer: TokenIssuer = issuer
        self.devices: DeviceRegistry = devices
        self.users: UserRepository = users

    async def register_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        name: str,
        device_info: dict[str, Any],
        app_signature: str | None,
        device_id: str | None = None,
        phone: str | None = None,
        ip_address: str | None = None,
    ) -> LoginResult:
        """보호자 회원가입 — 사용자 생성, 기기 등록/연결, 토큰 발급.

        Create a pet owner account, register and link the device, and issue a
        token pair.

        Raises:
            DuplicateError: 이미 등록된 이메일 (Email already registered)
            InvalidAppSignatureError: 허용되지 않은 앱 서명 (App signature not allowed)
            DeviceUnauthorizedError: 차단/비활성 기기 (Blocked or inactive device)
        """
        normalized: str = email.strip().lower()
        if await self.users.get_by_email(db, normalized) is not None:
            raise DuplicateError("Email is already registered")

        device: Device = await self.devices.register(
            db, device_id, device_info, app_signature, ip_address=ip_address
        )
        try:
            user: User = await self.users.create(db, {
                "email": normalized,
                "name": name,
                "phone": phone,
                "password_hash": hash_password(password),
                "role": ROLE_PET_OWNER,
                "last_login_at": utcnow(),
            })
        except IntegrityError as exc:
            raise DuplicateError("Email is already registered") from exc
        await self.devices.link_user(db, device.device_id, user.id, ip_address)

        tokens: TokenPair = await self.issuer.issue_token_pair(
            db, user, user.role, device.device_id, device_info
        )
        logger.info("Registered user %s on device %s", user.id, device.device_id)
        return LoginResult(user=user, device=device, tokens=tokens)

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        device_id: str | None,
        device_info: dict[str, Any],
        app_signature: str | None = None,
        ip_address: str | None = None,
    ) -> LoginResult:
        """이메일/비밀번호 로그인.

        Authenticate credentials, then ensure and link the device and issue a
        token pair. Unknown email and wrong password fail identically.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            email: 로그인 이메일 (Login email)
            password: 평문 비밀번호 (Plain text password)
            device_id: 기기 ID, 없으면 새 기기로 등록 (Device id; None registers a new device)
            device_info: 기기 정보 (Device info, snake_case keys)
            app_signature: 앱 서명 (App signature)
            ip_address: 요청 IP (Client IP)

        Returns:
            LoginResult: 사용자, 기기, 토큰 쌍 (User, device and token pair)

        Raises:
            InvalidCredentialsError: 이메일 또는 비밀번호 불일치 (Wrong email or password)
            AccountLockedError: 계정 잠금 (Account locked)
            DeviceUnauthorizedError: 차단/비활성 기기 (Blocked or inactive device)
        """
        user: User | None = await self.users.get_by_email(db, email)
        if user is None:
            verify_password(password, None)
            raise InvalidCredentialsError()

        if user.is_locked():
            raise AccountLockedError()

        if not verify_password(password, user.password_hash):
            attempts: int = await self.users.register_failed_login(
                db,
                user.id,
                self.policy.max_failed_logins,
                utcnow() + self.policy.lockout_duration,
            )
            if attempts >= self.policy.max_failed_logins:
                logger.warning("Locked account %s after %d failed logins", user.id, attempts)
            raise InvalidCredentialsError()

        if not user.is_active:
            raise InvalidCredentialsError("Account is deactivated")

        await self.users.reset_login_attempts(db, user)

        if device_id is None:
            device: Device = await self.devices.register(
                db, None, device_info, app_signature, ip_address=ip_address
            )
        else:
            device = await self.devices.ensure_device(
                db, device_id, device_info, app_signature, ip_address
            )
        if device.is_blocked or not device.is_active:
            raise DeviceUnauthorizedError("Device is blocked or inactive")

        await self.devices.link_user(db, device.device_id, user.id, ip_address)
        tokens: TokenPair = await self.issuer.issue_token_pair(
            db, user, user.role, device.device_id, device_info
        )
        return LoginResult(user=user, device=device, tokens=tokens)

    async def refresh(
        self,
        db: AsyncSession,
        refresh_token: str,
        device_id: str,
        ip_address: str | None = None,
    ) -> TokenPair:
        """리프레시 토큰으로 새 토큰 쌍을 발급합니다.

        Exchange a refresh token for a new pair. A token presented from a
        device other than the one it is bound to is a hard failure.

        Raises:
            InvalidRefreshTokenError: 없음/폐기/만료 (Missing, revoked or expired)
            DeviceMismatchError: 다른 기기에서 제시됨 (Presented from another device)
            UserNotFoundError: 사용자 없음 — 토큰도 폐기됨 (User gone; the token is revoked too)
            DeviceUnauthorizedError: 기기 차단/미신뢰/미연결 (Device not allowed to refresh)
        """
        record: RefreshTokenData | None = await self.issuer.verify_refresh_token(db, refresh_token)
        if record is None:
            raise InvalidRefreshTokenError()

        if record.device_id != device_id:
            logger.warning(
                "Refresh token for device %s presented from device %s", record.device_id, device_id
            )
            raise DeviceMismatchError()

        user: User | None = await self.users.get_by_id(db, record.user_id)
        if user is None or not user.is_active:
            await self.store.revoke(db, refresh_token, "user_not_found")
            raise UserNotFoundError()

        device: Device = await self.devices.check_refresh_allowed(db, device_id, user.id)
        device.last_active_at = utcnow()
        if ip_address:
            device.last_active_ip = ip_address

        return await self.issuer.rotate_on_refresh(db, record, user, ip_address)

    async def logout(
        self,
        db: AsyncSession,
        refresh_token: str,
        device_id: str | None = None,
    ) -> bool:
        """로그아웃 — 토큰 폐기 및 기기 연결 비활성화.

        Revoke the token and deactivate the user's link on the device the
        token is bound to. Works on expired tokens; an unknown token is
        simply a no-op.

        Returns:
            bool: 토큰을 찾았는지 여부 (Whether the token was recognized)
        """
        record: RefreshTokenData | None = await self.issuer.verify_refresh_token(
            db, refresh_token, ignore_expiry=True
        )
        if record is None:
            return False

        await self.store.revoke(db, refresh_token, "logout")
        if device_id is None or device_id == record.device_id:
            await self.devices.unlink_user(db, record.device_id, record.user_id)
        return True

    async def logout_all(self, db: AsyncSession, user_id: UUID) -> int:
        """모든 기기에서 로그아웃 (Revoke every refresh token of the user)."""
        return await self.store.revoke_all_for_user(db, user_id, "logout_all")

    def validate(self, access_token: str) -> dict[str, Any]:
        """액세스 토큰 검증 — 저장소 조회 없음.

        Verify an access token locally. A session revoked before the token's
        natural expiry is not detected here.
        """
        return self.issuer.verify_access_token(access_token)
