"""기본 레포지토리 — 세션 레포지토리의 공통 부모 클래스.

Base repository shared by the user, device and refresh token repositories.
Besides the primary-key lookup and plain insert, it builds the
dialect-specific INSERT that the atomic upserts (`ON CONFLICT DO NOTHING /
DO UPDATE`) rely on. PostgreSQL runs in production, SQLite in tests.

Usage:
    class DeviceRepository(BaseRepository[Device]):
        def __init__(self) -> None:
            super().__init__(Device)
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.database import Base

# 레포지토리가 다루는 ORM 모델 — The ORM model a repository manages
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """모델 하나를 다루는 제네릭 레포지토리.

    Generic repository bound to one model.

    Attributes:
        model: 대상 ORM 모델 (Managed ORM model)
    """

    def __init__(self, model: type[ModelType]) -> None:
        self.model: type[ModelType] = model

    async def get_by_id(
        self,
        db: AsyncSession,
        record_id: UUID,
    ) -> ModelType | None:
        """기본 키로 조회 (Look a row up by its UUID primary key)."""
        query: Select = select(self.model).where(self.model.id == record_id)
        return (await db.execute(query)).scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        obj_data: dict[str, Any],
    ) -> ModelType:
        """레코드를 추가하고 flush 후 서버 기본값까지 로드합니다.

        Add a row, flush it and reload it so server-side defaults are
        populated. The caller's transaction decides whether it is kept.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            obj_data: 컬럼 값 (Column values)

        Returns:
            ModelType: 생성된 레코드 (The new row)
        """
        instance: ModelType = self.model(**obj_data)
        db.add(instance)
        await db.flush()
        await db.refresh(instance)
        return instance

    def insert_stmt(self, db: AsyncSession, model: type[Base] | None = None) -> Any:
        """방언별 INSERT 문 — on_conflict_* 를 지원하는 insert 생성.

        Build a dialect-specific INSERT supporting `on_conflict_do_nothing` /
        `on_conflict_do_update` for the session's bound database.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            model: 대상 모델, 생략 시 레포지토리 모델 (Target model, defaults to self.model)

        Raises:
            NotImplementedError: 지원하지 않는 방언 (Unsupported dialect)
        """
        target = model or self.model
        dialect: str = db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(target)
        if dialect == "sqlite":
            return sqlite.insert(target)
        raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
