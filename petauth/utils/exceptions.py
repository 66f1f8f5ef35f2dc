"""커스텀 HTTP 예외 클래스 모듈.

Custom HTTP exception classes module.
Session errors are pre-configured HTTPException subclasses carrying a
machine-readable `code`; the application renders them as
`{"success": false, "message": ..., "code": ...}`.

Usage:
    from petauth.utils.exceptions import InvalidRefreshTokenError
    raise InvalidRefreshTokenError()
"""

from fastapi import HTTPException, status


class SessionError(HTTPException):
    """세션 도메인 예외의 기반 클래스.

    Base class for session-domain failures. Handled at the API boundary and
    converted to a structured response; never fatal.

    Args:
        detail: 오류 메시지 (Error message)
    """

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    code: str = "SESSION_ERROR"
    default_detail: str = "Request could not be completed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
        )


class InvalidCredentialsError(SessionError):
    """401 — 이메일/비밀번호 불일치. 어느 쪽이 틀렸는지 밝히지 않음.

    Wrong email or password; never reveals which field was wrong.
    """

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    default_detail = "Invalid email or password"


class AccountLockedError(SessionError):
    """423 — 로그인 실패 누적으로 계정 잠금 (Account temporarily locked)."""

    status_code_default = status.HTTP_423_LOCKED
    code = "ACCOUNT_LOCKED"
    default_detail = "Account temporarily locked after too many failed logins"


class InvalidRefreshTokenError(SessionError):
    """401 — 리프레시 토큰 없음/폐기/만료.

    Refresh token absent, malformed, revoked, or expired.
    """

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_REFRESH_TOKEN"
    default_detail = "Refresh token is invalid or expired"


class DeviceMismatchError(InvalidRefreshTokenError):
    """토큰에 바인딩된 기기와 요청 기기가 다름.

    The token's bound device differs from the presenting device. Renders the
    same body as InvalidRefreshTokenError so clients cannot tell which check
    failed.
    """


class DeviceUnauthorizedError(SessionError):
    """403 — 기기 차단/비활성/미신뢰 또는 사용자 연결 없음.

    Device blocked, inactive, untrusted, or the user has no active link to it.
    """

    status_code_default = status.HTTP_403_FORBIDDEN
    code = "DEVICE_UNAUTHORIZED"
    default_detail = "Device is not authorized for this account"


class UserNotFoundError(SessionError):
    """404 — 토큰이 가리키는 사용자가 더 이상 없음 (User no longer exists)."""

    status_code_default = status.HTTP_404_NOT_FOUND
    code = "USER_NOT_FOUND"
    default_detail = "User not found"


class InvalidAppSignatureError(SessionError):
    """403 — 허용 목록에 없는 앱 서명 (App signature not on the allow-list)."""

    status_code_default = status.HTTP_403_FORBIDDEN
    code = "INVALID_APP_SIGNATURE"
    default_detail = "Invalid app signature"


class NotFoundError(SessionError):
    """404 Not Found 예외 — 요청한 리소스를 찾을 수 없을 때 사용."""

    status_code_default = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_detail = "Resource not found"


class DuplicateError(SessionError):
    """409 Conflict 예외 — 중복 리소스 생성 시도 시 사용.

    Raised when attempting to create a resource that violates a uniqueness
    constraint (e.g. an email that is already registered).
    """

    status_code_default = status.HTTP_409_CONFLICT
    code = "DUPLICATE"
    default_detail = "Resource already exists"


class BadRequestError(SessionError):
    """400 Bad Request 예외 — 잘못된 요청 데이터 시 사용."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"
    default_detail = "Bad request"


class DuplicateRefreshTokenError(Exception):
    """리프레시 토큰 고유 제약 위반 — 새 토큰으로 재시도 가능.

    Unique constraint violation on a freshly generated refresh token.
    Retriable: the issuer generates a new token and tries again.
    """


class TokenExpiredError(SessionError):
    """401 — 만료된 액세스 토큰, 클라이언트는 갱신해야 함 (Access token expired; refresh)."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_EXPIRED"
    default_detail = "Access token expired"


class InvalidTokenError(SessionError):
    """401 — 누락, 서명 오류, 형식 오류 액세스 토큰 (Missing or invalid access token)."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"
    default_detail = "Invalid access token"


class ForbiddenError(SessionError):
    """403 Forbidden 예외 — 권한 부족 시 사용 (Insufficient permissions)."""

    status_code_default = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_detail = "Insufficient permissions"
