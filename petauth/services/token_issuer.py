"""토큰 발급기 — 액세스/리프레시 토큰 발급, 검증, 회전.

Token Issuer — Mints and verifies both token kinds and owns the refresh
rotation policy.

- Access tokens are short-lived signed JWTs verified locally, with no store
  lookup.
- Refresh tokens are 512-bit random hex strings (not JWTs, nothing for the
  client to decode) persisted through the RefreshTokenStore.

Rotation heuristic:
    Each refresh bumps the token's usage count atomically. Once the count
    reaches `rotate_after_uses`, the whole family is revoked and a fresh
    token continuing the family is issued. Two concurrent refreshes near the
    threshold may both rotate; the family stays revocable as a unit.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import UUID

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.config import SessionPolicy
from petauth.models.token import RefreshToken
from petauth.models.user import User
from petauth.repositories.refresh_token_repository import RefreshTokenStore
from petauth.utils.clock import as_utc, utcnow
from petauth.utils.exceptions import DuplicateRefreshTokenError
from petauth.utils.jwt import decode_token, encode_token

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE: str = "access"
# 512비트 — 64 random bytes rendered as 128 hex chars
REFRESH_TOKEN_BYTES: int = 64
_CREATE_ATTEMPTS: int = 3


class AccessTokenError(Exception):
    """액세스 토큰 검증 실패의 기반 클래스 (Base class for access token failures)."""


class ExpiredAccessTokenError(AccessTokenError):
    """서명은 유효하지만 만료된 토큰 — 클라이언트는 갱신해야 함.

    Valid signature, past `exp`: the client should refresh.
    """


class InvalidAccessTokenError(AccessTokenError):
    """서명 오류, 형식 오류, 잘못된 토큰 유형.

    Bad signature, malformed token, or wrong token type.

    Attributes:
        reason: "signature" | "malformed" | "type"
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid access token ({reason})")
        self.reason: str = reason


@dataclass(frozen=True)
class IssuedRefreshToken:
    token: str
    expires_at: datetime
    token_family: str


@dataclass(frozen=True)
class TokenPair:
    """발급된 토큰 쌍 (Issued access/refresh pair).

    Attributes:
        expires_in: 액세스 토큰 수명(초) (Access token lifetime in seconds)
        rotated: 리프레시 토큰이 새로 발급되었는지 여부
                 (True when a new refresh token replaced the presented one)
    """

    access_token: str
    refresh_token: str
    token_family: str
    expires_in: int
    refresh_expires_at: datetime
    rotated: bool = True


@dataclass(frozen=True)
class RefreshTokenData:
    """검증된 리프레시 토큰의 소유 정보 (Ownership of a verified refresh token)."""

    token: str
    user_id: UUID
    user_type: str
    device_id: str
    token_family: str
    usage_count: int
    expires_at: datetime


@dataclass(frozen=True)
class AccessTokenCheck:
    """3상태 검증 결과 — valid / expired / invalid."""

    status: Literal["valid", "expired", "invalid"]
    claims: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


class TokenIssuer:
    """토큰 발급 및 검증 서비스.

    Service that issues and verifies tokens. Stateless apart from the
    injected policy and store.

    Args:
        policy: 세션 정책 (Session policy)
        store: 리프레시 토큰 저장소 (Refresh token store)
    """

    def __init__(self, policy: SessionPolicy, store: RefreshTokenStore) -> None:
        self.policy: SessionPolicy = policy
        self.store: RefreshTokenStore = store

    @property
    def _verification_keys(self) -> tuple[str, ...]:
        return (self.policy.jwt_secret_key, *self.policy.jwt_previous_secret_keys)

    @property
    def access_token_lifetime(self) -> int:
        """액세스 토큰 수명(초) (Access token lifetime in seconds)."""
        return int(self.policy.access_token_ttl.total_seconds())

    # ---- 액세스 토큰 — Access tokens ----

    def issue_access_token(self, claims: dict[str, Any], ttl: timedelta | None = None) -> str:
        """액세스 토큰을 서명합니다.

        Sign `claims ∪ {type: "access", iat, exp}` with the current key.

        Args:
            claims: 토큰 클레임 (id, role, email, deviceId)
            ttl: 수명, 생략 시 정책 기본값 (Lifetime; defaults to the policy TTL)

        Returns:
            str: 서명된 JWT (Signed JWT)
        """
        payload: dict[str, Any] = {**claims, "type": ACCESS_TOKEN_TYPE}
        return encode_token(
            payload,
            self.policy.jwt_secret_key,
            self.policy.jwt_algorithm,
            ttl or self.policy.access_token_ttl,
        )

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """액세스 토큰을 검증합니다 — I/O 없음.

        Verify an access token's signature, expiry and type. Pure; performs
        no store lookup.

        Returns:
            dict[str, Any]: 클레임 (Verified claims)

        Raises:
            ExpiredAccessTokenError: 만료 (Token expired)
            InvalidAccessTokenError: 서명/형식/유형 오류 (Signature, format or type failure)
        """
        try:
            claims: dict[str, Any] = decode_token(
                token, self._verification_keys, self.policy.jwt_algorithm
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredAccessTokenError("Access token expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidAccessTokenError("signature") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidAccessTokenError("malformed") from exc

        if claims.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidAccessTokenError("type")
        return claims

    def validate_access_token(self, token: str) -> AccessTokenCheck:
        """예외 없이 3상태로 검증 결과를 반환합니다.

        Non-raising variant of `verify_access_token`.
        """
        try:
            return AccessTokenCheck(status="valid", claims=self.verify_access_token(token))
        except ExpiredAccessTokenError as exc:
            return AccessTokenCheck(status="expired", error=str(exc))
        except InvalidAccessTokenError as exc:
            return AccessTokenCheck(status="invalid", error=exc.reason)

    # ---- 리프레시 토큰 — Refresh tokens ----

    async def issue_refresh_token(
        self,
        db: AsyncSession,
        user_id: UUID,
        user_type: str,
        device_id: str,
        device_info: dict[str, Any] | None = None,
        token_family: str | None = None,
    ) -> IssuedRefreshToken:
        """불투명 리프레시 토큰을 생성하고 저장합니다.

        Generate and persist an opaque refresh token. Omitting `token_family`
        starts a new logical session; passing one continues it.

        Raises:
            DuplicateRefreshTokenError: 재시도 후에도 충돌 (Collision persisted across retries)
        """
        family: str = token_family or uuid.uuid4().hex
        expires_at: datetime = utcnow() + self.policy.refresh_token_ttl

        for attempt in range(1, _CREATE_ATTEMPTS + 1):
            token: str = generate_refresh_token()
            try:
                await self.store.create(db, {
                    "token": token,
                    "user_id": user_id,
                    "user_type": user_type,
                    "device_id": device_id,
                    "device_info": dict(device_info or {}),
                    "token_family": family,
                    "expires_at": expires_at,
                })
            except DuplicateRefreshTokenError:
                logger.warning("Refresh token collision (attempt %d/%d)", attempt, _CREATE_ATTEMPTS)
                if attempt == _CREATE_ATTEMPTS:
                    raise
                continue
            return IssuedRefreshToken(token=token, expires_at=expires_at, token_family=family)
        raise DuplicateRefreshTokenError(family)

    def _access_claims(self, user: User, user_type: str, device_id: str) -> dict[str, Any]:
        return {
            "id": str(user.id),
            "role": user_type,
            "email": user.email,
            "deviceId": device_id,
        }

    async def issue_token_pair(
        self,
        db: AsyncSession,
        user: User,
        user_type: str,
        device_id: str,
        device_info: dict[str, Any] | None = None,
        token_family: str | None = None,
    ) -> TokenPair:
        """액세스 토큰과 리프레시 토큰 쌍을 발급합니다.

        Issue an access/refresh pair. Sole entry point for the login,
        register and refresh flows.
        """
        refresh: IssuedRefreshToken = await self.issue_refresh_token(
            db, user.id, user_type, device_id, device_info, token_family
        )
        return TokenPair(
            access_token=self.issue_access_token(self._access_claims(user, user_type, device_id)),
            refresh_token=refresh.token,
            token_family=refresh.token_family,
            expires_in=self.access_token_lifetime,
            refresh_expires_at=refresh.expires_at,
            rotated=True,
        )

    async def verify_refresh_token(
        self,
        db: AsyncSession,
        token: str,
        ignore_expiry: bool = False,
    ) -> RefreshTokenData | None:
        """리프레시 토큰을 조회하고 검증합니다.

        Look up a refresh token. Returns None (never raises) when the token is
        missing, revoked, or expired; `ignore_expiry` lets logout identify the
        owner of an already-expired token.
        """
        if not token:
            return None
        record: RefreshToken | None = await self.store.find_by_token(db, token)
        if record is None or record.is_revoked:
            return None
        if not ignore_expiry and record.is_expired():
            return None
        return RefreshTokenData(
            token=token,
            user_id=record.user_id,
            user_type=record.user_type,
            device_id=record.device_id,
            token_family=record.token_family,
            usage_count=record.usage_count,
            expires_at=as_utc(record.expires_at),
        )

    async def rotate_on_refresh(
        self,
        db: AsyncSession,
        record: RefreshTokenData,
        user: User,
        ip_address: str | None = None,
        device_info: dict[str, Any] | None = None,
    ) -> TokenPair:
        """갱신 시 새 토큰 쌍을 발급하고 필요하면 패밀리를 회전합니다.

        Record usage, then either rotate (revoke the family and issue a new
        refresh token in it) or keep the presented refresh token and issue
        only a new access token.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            record: 검증된 리프레시 토큰 (Verified refresh token)
            user: 토큰 소유자 (Token owner)
            ip_address: 요청 IP (Client IP)
            device_info: 새 토큰에 기록할 기기 정보 (Device info snapshot for a new token)

        Returns:
            TokenPair: 새 토큰 쌍 (New pair; `rotated` tells which branch ran)
        """
        usage: int | None = await self.store.record_usage(db, record.token, ip_address)
        if usage is None:
            # 조회와 사용 사이에 정리됨 — Swept between lookup and use
            usage = record.usage_count + 1

        if usage >= self.policy.rotate_after_uses:
            revoked: int = await self.store.revoke_family(db, record.token_family, "rotation")
            logger.info(
                "Rotated refresh family %s for user %s after %d uses (%d revoked)",
                record.token_family, record.user_id, usage, revoked,
            )
            return await self.issue_token_pair(
                db, user, record.user_type, record.device_id, device_info, record.token_family
            )

        return TokenPair(
            access_token=self.issue_access_token(
                self._access_claims(user, record.user_type, record.device_id)
            ),
            refresh_token=record.token,
            token_family=record.token_family,
            expires_in=self.access_token_lifetime,
            refresh_expires_at=record.expires_at,
            rotated=False,
        )
