"""비밀번호 해싱 및 검증 유틸리티 모듈.

Password hashing for the user store collaborator, using bcrypt directly.
The session core only ever calls `verify_password`.
"""

import bcrypt

# 존재하지 않는 이메일에도 동일한 비용의 검증 수행 — Same-cost check for unknown emails
_DUMMY_HASH: bytes = bcrypt.hashpw(b"petauth-dummy-password", bcrypt.gensalt())


def hash_password(password: str) -> str:
    """평문 비밀번호를 bcrypt 해시로 변환합니다.

    Args:
        password: 평문 비밀번호 (Plain text password to hash)

    Returns:
        str: bcrypt 해시 문자열 (Bcrypt hash string, ~60 chars)
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """평문 비밀번호와 bcrypt 해시를 비교 검증합니다.

    Verify a password against a stored hash. When no hash is given (unknown
    account) a dummy hash is checked so both failure paths cost the same.

    Args:
        plain_password: 검증할 평문 비밀번호 (Plain text password to verify)
        hashed_password: 저장된 bcrypt 해시 (Stored bcrypt hash, None for unknown users)

    Returns:
        bool: 일치하면 True (True if password matches hash)
    """
    if hashed_password is None:
        bcrypt.checkpw(plain_password.encode("utf-8"), _DUMMY_HASH)
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )
