"""인증 관련 Pydantic 요청/응답 스키마 정의.

Authentication-related Pydantic request/response schema definitions.
Covers mobile registration and login, token refresh, logout and access
token validation. Response shapes (`success`, `tokens.accessToken`,
`tokens.refreshToken`, `tokens.expiresIn`, `tokens.refreshExpiresAt`) are
kept stable for existing mobile clients.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from petauth.models.user import User
from petauth.schemas.common import CamelModel
from petauth.schemas.device import DeviceInfo
from petauth.services.token_issuer import TokenPair


class MobileRegisterRequest(CamelModel):
    """보호자 회원가입 요청 스키마.

    Pet owner registration request schema.

    Attributes:
        email: 이메일 — 소문자로 저장 (Login email, stored lower-cased)
        password: 비밀번호 (Plain text, bcrypt-hashed on the server)
        name: 표시 이름 (Display name)
        phone: 전화번호 (Phone number, optional)
        device_id: 기기 ID — 생략 시 서버가 생성 (Minted by the server when omitted)
        device_info: 기기 정보 (Device info)
        app_signature: 앱 서명 (App signature)
    """

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=128)  # 평문 — 서버에서 bcrypt 해싱
    name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    device_id: str | None = Field(default=None, max_length=128)
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    app_signature: str | None = None


class MobileLoginRequest(CamelModel):
    """모바일 로그인 요청 스키마.

    Mobile login request schema.

    Attributes:
        email: 로그인 이메일 (Login email)
        password: 비밀번호 (Plain text password, verified against bcrypt hash)
        device_id: 기기 ID (Device id; omitted on a first launch)
    """

    email: str
    password: str
    device_id: str | None = Field(default=None, max_length=128)
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    app_signature: str | None = None


class RefreshTokenRequest(CamelModel):
    """토큰 갱신 요청 — 토큰과 제시 기기 (Refresh token and presenting device)."""

    refresh_token: str
    device_id: str


class LogoutRequest(CamelModel):
    refresh_token: str
    device_id: str | None = None


class TokenBundle(CamelModel):
    """토큰 응답 묶음.

    Token bundle returned by login, register and refresh.

    Attributes:
        access_token: JWT 액세스 토큰 — 기본 15분 (Access token, default TTL 15 min)
        refresh_token: 불투명 리프레시 토큰 — 기본 30일 (Opaque refresh token, default TTL 30 days)
        expires_in: 액세스 토큰 수명(초) (Access token lifetime in seconds)
        refresh_expires_at: 리프레시 토큰 만료 시각 (Refresh token expiry)
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_at: datetime

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenBundle":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            refresh_expires_at=pair.refresh_expires_at,
        )


class UserSummary(CamelModel):
    id: str
    email: str
    name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=str(user.id), email=user.email, name=user.name, role=user.role)


class AuthResponse(CamelModel):
    """로그인/회원가입 응답 (Login and registration response)."""

    success: bool = True
    user: UserSummary
    device_id: str
    tokens: TokenBundle


class RefreshResponse(CamelModel):
    """토큰 갱신 응답.

    Attributes:
        rotated: 새 리프레시 토큰이 발급되었는지 여부
                 (True when the client must store the new refresh token)
    """

    success: bool = True
    tokens: TokenBundle
    rotated: bool


class TokenClaims(CamelModel):
    id: str
    role: str
    email: str | None = None
    device_id: str | None = None
    expires_at: datetime

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenClaims":
        return cls(
            id=claims["id"],
            role=claims["role"],
            email=claims.get("email"),
            device_id=claims.get("deviceId"),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )


class ValidateTokenResponse(CamelModel):
    success: bool = True
    valid: bool = True
    user: TokenClaims


class LogoutAllResponse(CamelModel):
    success: bool = True
    message: str
    revoked_count: int
