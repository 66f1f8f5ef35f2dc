"""사용자 레포지토리 — 사용자 조회 및 로그인 실패/잠금 관리.

User Repository — User lookups and failed-login / lockout bookkeeping for the
session core's user store collaborator.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, and_, case, null, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.models.user import User
from petauth.repositories.base import BaseRepository
from petauth.utils.clock import utcnow


class UserRepository(BaseRepository[User]):
    """사용자 테이블에 대한 데이터베이스 쿼리를 담당하는 레포지토리.

    Repository handling database queries for the users table.
    """

    def __init__(self) -> None:
        super().__init__(User)

    async def get_by_email(
        self,
        db: AsyncSession,
        email: str,
    ) -> User | None:
        """이메일로 사용자를 조회합니다 (대소문자 무시).

        Retrieve a user by email; emails are stored lower-cased.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            email: 조회할 이메일 (Email to look up)

        Returns:
            User | None: 조회된 사용자 또는 None (Found user or None)
        """
        query: Select = select(User).where(User.email == email.strip().lower())
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def register_failed_login(
        self,
        db: AsyncSession,
        user_id: UUID,
        max_attempts: int,
        lockout_until: datetime,
        now: datetime | None = None,
    ) -> int:
        """로그인 실패 횟수를 원자적으로 증가시키고 한도 도달 시 잠급니다.

        Atomically increment the failed-login counter; the update that reaches
        `max_attempts` also sets `lockout_until`. Once a previous lockout has
        expired the counter restarts at 1 and the stale lockout is cleared.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 대상 사용자 ID (Target user UUID)
            max_attempts: 잠금 기준 횟수 (Attempts that trigger a lockout)
            lockout_until: 잠금 해제 시각 (Lockout end to set)
            now: 기준 시각, 기본값 현재 (Reference time, defaults to now)

        Returns:
            int: 증가 후 실패 횟수 (Failed attempt count after the increment)
        """
        now = now or utcnow()
        expired = and_(User.lockout_until.is_not(None), User.lockout_until <= now)
        next_count = case((expired, 1), else_=User.failed_login_attempts + 1)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=next_count,
                lockout_until=case(
                    (next_count >= max_attempts, lockout_until),
                    (expired, null()),
                    else_=User.lockout_until,
                ),
            )
            .returning(User.failed_login_attempts)
            .execution_options(synchronize_session="fetch")
        )
        attempts: int = (await db.execute(stmt)).scalar_one()
        await db.flush()
        return attempts

    async def reset_login_attempts(
        self,
        db: AsyncSession,
        user: User,
    ) -> None:
        """로그인 성공 시 실패 횟수와 잠금을 초기화합니다.

        Reset the failure counter and lockout after a successful login.
        """
        user.failed_login_attempts = 0
        user.lockout_until = None
        user.last_login_at = utcnow()
        await db.flush()


# 싱글턴 인스턴스 — Singleton instance
user_repository: UserRepository = UserRepository()
