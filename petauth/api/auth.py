"""모바일 인증 라우터 — 회원가입, 로그인, 토큰 갱신, 로그아웃, 검증.

Mobile Auth Router — Registration, login, token refresh, logout and access
token validation endpoints. Routers own the transaction: services flush,
the router commits. Failed logins and self-healing revocations are
committed before the error response is rendered.
"""

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.api.deps import client_ip, get_current_claims, get_optional_claims, get_session_service
from petauth.database import get_db
from petauth.models.device import Device
from petauth.schemas.auth import (
    AuthResponse,
    LogoutAllResponse,
    LogoutRequest,
    MobileLoginRequest,
    MobileRegisterRequest,
    RefreshResponse,
    RefreshTokenRequest,
    TokenBundle,
    TokenClaims,
    UserSummary,
    ValidateTokenResponse,
)
from petauth.schemas.common import MessageResponse
from petauth.schemas.device import DeviceRegisterRequest, DeviceRegisterResponse
from petauth.services.session_service import LoginResult, SessionService
from petauth.services.token_issuer import TokenPair
from petauth.utils.exceptions import SessionError

logger = logging.getLogger(__name__)

router: APIRouter = APIRouter()


def _auth_response(result: LoginResult) -> AuthResponse:
    return AuthResponse(
        user=UserSummary.from_user(result.user),
        device_id=result.device.device_id,
        tokens=TokenBundle.from_pair(result.tokens),
    )


@router.post("/mobile-register", response_model=AuthResponse, status_code=201)
async def mobile_register(
    data: MobileRegisterRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> AuthResponse:
    """보호자 회원가입 — 계정 생성, 기기 연결, 토큰 발급.

    Pet owner registration. Creates the account, links the device and
    returns a token pair.
    """
    result: LoginResult = await service.register_user(
        db,
        email=data.email,
        password=data.password,
        name=data.name,
        phone=data.phone,
        device_id=data.device_id,
        device_info=data.device_info.to_registry(),
        app_signature=data.app_signature,
        ip_address=client_ip(request),
    )
    await db.commit()
    return _auth_response(result)


@router.post("/device-register", response_model=DeviceRegisterResponse, status_code=201)
async def device_register(
    data: DeviceRegisterRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    claims: Annotated[dict[str, Any] | None, Depends(get_optional_claims)],
) -> DeviceRegisterResponse:
    """기기 등록 — 로그인 상태면 현재 사용자와 연결.

    Device registration. When a bearer token is sent, the device is also
    linked to that user.
    """
    device: Device = await service.devices.register(
        db,
        data.device_id,
        data.device_info.to_registry(),
        data.app_signature,
        user_id=UUID(claims["id"]) if claims else None,
        ip_address=client_ip(request),
    )
    await db.commit()
    return DeviceRegisterResponse(
        device_id=device.device_id,
        trust_score=device.trust_score,
        is_trusted=device.trust_score >= service.policy.trust_threshold,
    )


@router.post("/mobile-login", response_model=AuthResponse)
async def mobile_login(
    data: MobileLoginRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> AuthResponse:
    """모바일 로그인 — 이메일/비밀번호 + 기기 정보.

    Mobile login with email, password and device identity.
    """
    try:
        result: LoginResult = await service.login(
            db,
            email=data.email,
            password=data.password,
            device_id=data.device_id,
            device_info=data.device_info.to_registry(),
            app_signature=data.app_signature,
            ip_address=client_ip(request),
        )
    except SessionError:
        # 실패 횟수/잠금은 오류 응답 전에 저장 — Persist the failure counter
        await db.commit()
        raise
    await db.commit()
    return _auth_response(result)


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    data: RefreshTokenRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> RefreshResponse:
    """토큰 갱신 — 리프레시 토큰과 기기 ID로 새 토큰 쌍 발급.

    Exchange a refresh token for a new pair. `rotated` tells the client
    whether it must store a new refresh token.
    """
    try:
        pair: TokenPair = await service.refresh(
            db, data.refresh_token, data.device_id, client_ip(request)
        )
    except SessionError:
        # 사용자 없는 토큰의 폐기를 저장 — Persist self-healing revocation
        await db.commit()
        raise
    await db.commit()
    return RefreshResponse(tokens=TokenBundle.from_pair(pair), rotated=pair.rotated)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: LogoutRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> MessageResponse:
    """로그아웃 — 항상 성공 응답.

    Logout. Always answers success; revocation is best effort.
    """
    try:
        await service.logout(db, data.refresh_token, data.device_id)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Logout failed for device %s", data.device_id)
        await db.rollback()
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> LogoutAllResponse:
    """모든 기기에서 로그아웃 (Revoke every refresh token of the current user)."""
    revoked: int = await service.logout_all(db, UUID(claims["id"]))
    await db.commit()
    return LogoutAllResponse(message="Logged out from all devices", revoked_count=revoked)


@router.post("/validate-token", response_model=ValidateTokenResponse)
async def validate_token(
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> ValidateTokenResponse:
    """액세스 토큰 검증 — 저장소 조회 없음.

    Access token validation. Signature and expiry only; no store lookup.
    """
    return ValidateTokenResponse(user=TokenClaims.from_claims(claims))
