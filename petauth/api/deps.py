"""FastAPI 의존성 주입 모듈 — 세션 서비스, 인증 및 권한 검사.

FastAPI dependency injection module — Session service, authentication and
authorization.

Authentication Flow:
    1. 클라이언트가 Authorization: Bearer <token> 헤더를 전송
       (Client sends Authorization: Bearer <token> header)
    2. HTTPBearer가 토큰을 추출 (HTTPBearer extracts the token)
    3. SessionService.validate()가 서명/만료/유형을 로컬에서 검증
       (Signature, expiry and type are verified locally, no store lookup)
    4. 만료는 TOKEN_EXPIRED, 그 외 실패는 INVALID_TOKEN (401)
       (Expired -> TOKEN_EXPIRED, anything else -> INVALID_TOKEN)

Authorization Flow (require_admin):
    1. 클레임의 역할이 admin인지 확인 (Role claim must be admin)
    2. DB에서 사용자가 여전히 활성 관리자인지 확인
       (User must still exist as an active admin)
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.database import get_db
from petauth.models.user import ROLE_ADMIN, User
from petauth.services.session_service import SessionService
from petauth.services.token_issuer import ExpiredAccessTokenError, InvalidAccessTokenError
from petauth.utils.exceptions import ForbiddenError, InvalidTokenError, TokenExpiredError

# HTTP Bearer 토큰 추출기 — 누락 시 자체 오류 형식으로 응답하기 위해 auto_error=False
# (auto_error=False so a missing token renders the session error body)
security: HTTPBearer = HTTPBearer(auto_error=False)


def get_session_service(request: Request) -> SessionService:
    """앱 시작 시 조립된 세션 서비스 (Session service wired in create_app)."""
    return request.app.state.session_service


def client_ip(request: Request) -> str | None:
    """클라이언트 IP — 프록시 헤더 우선 (Client IP, proxy header first)."""
    forwarded: str | None = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_current_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> dict[str, Any]:
    """Authorization 헤더의 액세스 토큰을 검증하고 클레임을 반환합니다.

    Verify the bearer access token and return its claims.

    Raises:
        TokenExpiredError: 만료된 토큰 (Expired token, client should refresh)
        InvalidTokenError: 누락/위조/형식 오류 (Missing, forged, or malformed token)
    """
    if credentials is None:
        raise InvalidTokenError("Access token required")
    try:
        return service.validate(credentials.credentials)
    except ExpiredAccessTokenError:
        raise TokenExpiredError()
    except InvalidAccessTokenError:
        raise InvalidTokenError()


async def get_optional_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> dict[str, Any] | None:
    """토큰이 있으면 검증, 없으면 None (Claims when a bearer token is sent, else None)."""
    if credentials is None:
        return None
    return await get_current_claims(credentials, service)


async def require_admin(
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> User:
    """관리자 권한 검사 의존성.

    Dependency enforcing the admin role; the account must still be an
    active admin in the database.

    Raises:
        ForbiddenError: 관리자가 아님 (Not an admin)
    """
    if claims.get("role") != ROLE_ADMIN:
        raise ForbiddenError()
    user: User | None = await service.users.get_by_id(db, UUID(claims["id"]))
    if user is None or not user.is_active or user.role != ROLE_ADMIN:
        raise ForbiddenError()
    return user
