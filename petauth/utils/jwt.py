"""JWT 서명 및 검증 유틸리티 모듈.

JWT signing and verification utility module.
Access tokens are signed with the current key; verification also accepts
previous keys so a key rotation does not log every client out at once.

JWT Payload Structure:
    {
        "id": "user_uuid",          # 사용자 ID (User identifier)
        "role": "petOwner",         # 역할 이름 (Role name)
        "email": "a@b.c",           # 이메일 (Email)
        "deviceId": "abc123",       # 기기 ID (Bound device identifier)
        "type": "access",           # 토큰 유형 (Token type discriminator)
        "iat": 1234567890,          # 발급 시각 UNIX timestamp (Issued at)
        "exp": 1234567890           # 만료 시간 UNIX timestamp (Expiration)
    }
    헤더의 "kid"는 서명 키 지문입니다 (The "kid" header is the signing key fingerprint).
"""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import jwt


def key_id(secret: str) -> str:
    """서명 키 지문 — first 16 hex chars of the key's SHA-256."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:16]


def encode_token(
    claims: dict[str, Any],
    secret: str,
    algorithm: str,
    expires_in: timedelta,
) -> str:
    """JWT를 생성합니다.

    Sign `claims` with `iat`/`exp` added.

    Args:
        claims: JWT 페이로드 데이터 (JWT payload data)
        secret: 서명 키 (Signing key)
        algorithm: 서명 알고리즘 (Signing algorithm, e.g. HS256)
        expires_in: 유효 기간 (Lifetime)

    Returns:
        str: 인코딩된 JWT 문자열 (Encoded JWT token string)
    """
    to_encode: dict[str, Any] = claims.copy()
    now: datetime = datetime.now(timezone.utc)
    to_encode.update({
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    })
    return jwt.encode(
        to_encode,
        secret,
        algorithm=algorithm,
        headers={"kid": key_id(secret)},
    )


def decode_token(
    token: str,
    secrets: Sequence[str],
    algorithm: str,
) -> dict[str, Any]:
    """JWT 토큰을 디코딩하고 검증합니다.

    Decode and verify a JWT against the key ring. The key named by the `kid`
    header is tried first, then every other key in order.

    Args:
        token: JWT 토큰 문자열 (Encoded JWT token string)
        secrets: 현재 키가 맨 앞인 키 목록 (Key ring, current key first)
        algorithm: 허용 알고리즘 (Accepted algorithm)

    Returns:
        dict[str, Any]: 디코딩된 페이로드 딕셔너리 (Decoded payload dictionary)

    Raises:
        jwt.ExpiredSignatureError: 토큰 만료 시 (When token has expired)
        jwt.InvalidSignatureError: 어떤 키로도 서명 검증 실패 (No key verifies the signature)
        jwt.InvalidTokenError: 형식 오류 등 (Malformed token and other failures)
    """
    header: dict[str, Any] = jwt.get_unverified_header(token)
    kid: str | None = header.get("kid")
    ordered: list[str] = sorted(secrets, key=lambda s: key_id(s) != kid)

    last_error: jwt.InvalidTokenError = jwt.InvalidSignatureError("Signature verification failed")
    for secret in ordered:
        try:
            return jwt.decode(token, secret, algorithms=[algorithm])
        except jwt.InvalidSignatureError as exc:
            # 다음 키로 재시도 — Try the next key
            last_error = exc
    raise last_error
