"""리프레시 토큰 저장소 — 영속적, 만료 가능, 폐기 가능한 리프레시 토큰.

Refresh Token Store — Durable, expiring, revocable opaque refresh tokens
grouped into rotation families.

Every write is a single atomic statement (INSERT .. ON CONFLICT, UPDATE ..
WHERE), never read-modify-write in Python, so a double-tap refresh from a
flaky network cannot lose updates. Raw tokens are hashed with SHA-256 before
they touch the database.
"""

import hashlib
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.config import SessionPolicy
from petauth.models.token import RefreshToken
from petauth.repositories.base import BaseRepository
from petauth.utils.clock import utcnow
from petauth.utils.exceptions import DuplicateRefreshTokenError

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """리프레시 토큰의 SHA-256 해시 (SHA-256 hex digest of a raw token)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RefreshTokenStore(BaseRepository[RefreshToken]):
    """리프레시 토큰 테이블에 대한 데이터베이스 쿼리를 담당하는 저장소.

    Store handling persistence of refresh tokens.

    Args:
        policy: 세션 정책 (Session policy; supplies the revoked-row retention)
    """

    def __init__(self, policy: SessionPolicy) -> None:
        super().__init__(RefreshToken)
        self.policy: SessionPolicy = policy

    async def create(
        self,
        db: AsyncSession,
        obj_data: dict[str, Any],
    ) -> RefreshToken:
        """새 리프레시 토큰 레코드를 원자적으로 생성합니다.

        Insert a refresh token row. `obj_data` carries the raw `token`, which
        is replaced by its hash.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            obj_data: 토큰 데이터 (token, user_id, user_type, device_id,
                      device_info, token_family, expires_at)

        Returns:
            RefreshToken: 생성된 레코드 (The created record)

        Raises:
            DuplicateRefreshTokenError: 동일 토큰이 이미 존재 (Token already stored; retriable)
        """
        values: dict[str, Any] = dict(obj_data)
        values["token_hash"] = hash_token(values.pop("token"))
        values.setdefault("device_info", {})

        stmt = (
            self.insert_stmt(db)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["token_hash"])
            .returning(RefreshToken)
        )
        record: RefreshToken | None = (await db.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise DuplicateRefreshTokenError(values["token_family"])
        return record

    async def find_by_token(
        self,
        db: AsyncSession,
        token: str,
    ) -> RefreshToken | None:
        """원본 토큰 문자열로 레코드를 조회합니다.

        Retrieve a refresh token record by the raw token the client holds.
        """
        query: Select = (
            select(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(token))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def _revoke_where(
        self,
        db: AsyncSession,
        reason: str,
        *criteria: Any,
    ) -> int:
        # 이미 폐기된 행은 제외 — Already revoked rows are left untouched
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.is_revoked.is_(False), *criteria)
            .values(is_revoked=True, revoked_at=utcnow(), revoked_reason=reason)
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0

    async def revoke(
        self,
        db: AsyncSession,
        token: str,
        reason: str = "manual",
    ) -> int:
        """단일 토큰을 폐기합니다. 멱등 — 이미 폐기된 토큰은 0을 반환.

        Revoke one token. Idempotent: a second call is a no-op returning 0.

        Returns:
            int: 새로 폐기된 행 수 (Rows newly revoked)
        """
        return await self._revoke_where(db, reason, RefreshToken.token_hash == hash_token(token))

    async def revoke_all_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        reason: str = "logout_all",
    ) -> int:
        """사용자의 모든 토큰을 폐기합니다 (Revoke every token of a user)."""
        count: int = await self._revoke_where(db, reason, RefreshToken.user_id == user_id)
        logger.info("Revoked %d refresh tokens for user %s (%s)", count, user_id, reason)
        return count

    async def revoke_all_for_device(
        self,
        db: AsyncSession,
        device_id: str,
        reason: str = "device_revoked",
    ) -> int:
        """기기의 모든 토큰을 폐기합니다 (Revoke every token bound to a device)."""
        count: int = await self._revoke_where(db, reason, RefreshToken.device_id == device_id)
        logger.info("Revoked %d refresh tokens for device %s (%s)", count, device_id, reason)
        return count

    async def revoke_family(
        self,
        db: AsyncSession,
        token_family: str,
        reason: str = "rotation",
    ) -> int:
        """패밀리 전체를 폐기합니다 — 이전에 발급된 토큰 포함.

        Revoke every token ever issued under a family, earlier ones included.
        """
        return await self._revoke_where(db, reason, RefreshToken.token_family == token_family)

    async def record_usage(
        self,
        db: AsyncSession,
        token: str,
        ip_address: str | None = None,
    ) -> int | None:
        """사용 횟수를 원자적으로 증가시킵니다.

        Atomically bump `usage_count` and the last-used metadata.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            token: 원본 토큰 문자열 (Raw token string)
            ip_address: 요청 IP (Client IP, optional)

        Returns:
            int | None: 증가 후 사용 횟수, 토큰이 없으면 None
                        (Usage count after the increment, None when unknown)
        """
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(token))
            .values(
                usage_count=RefreshToken.usage_count + 1,
                last_used_at=utcnow(),
                last_used_ip=ip_address,
            )
            .returning(RefreshToken.usage_count)
        )
        usage: int | None = (await db.execute(stmt)).scalar_one_or_none()
        await db.flush()
        return usage

    async def count_active(
        self,
        db: AsyncSession,
        user_id: UUID,
        device_id: str | None = None,
    ) -> int:
        """사용 가능한 토큰 수 (Count live tokens of a user, optionally on one device)."""
        query: Select = (
            select(func.count())
            .select_from(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at > utcnow(),
            )
        )
        if device_id is not None:
            query = query.where(RefreshToken.device_id == device_id)
        return (await db.execute(query)).scalar() or 0

    async def cleanup_expired(self, db: AsyncSession) -> int:
        """만료되었거나 오래전에 폐기된 토큰을 삭제합니다.

        Delete expired rows and revoked rows older than the retention window.
        Live tokens are never touched; repeated or overlapping runs are safe.

        Returns:
            int: 삭제된 행 수 (Number of rows deleted)
        """
        now = utcnow()
        stmt = (
            delete(RefreshToken)
            .where(
                or_(
                    RefreshToken.expires_at < now,
                    and_(
                        RefreshToken.is_revoked.is_(True),
                        RefreshToken.revoked_at < now - self.policy.revoked_retention,
                    ),
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0
