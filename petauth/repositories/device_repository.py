"""기기 레포지토리 — 기기, 기기-사용자 연결, 푸시 토큰 쿼리.

Device Repository — Queries for devices, device/user links and push tokens.
Creation and linking go through atomic upserts keyed by the unique
constraints, so concurrent logins on one device never duplicate rows.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.models.device import Device, DevicePushToken, DeviceUserLink
from petauth.repositories.base import BaseRepository
from petauth.utils.clock import utcnow


class DeviceRepository(BaseRepository[Device]):
    """기기 관련 테이블에 대한 데이터베이스 쿼리를 담당하는 레포지토리.

    Repository handling database queries for devices and their links.
    """

    def __init__(self) -> None:
        super().__init__(Device)

    async def get_by_device_id(
        self,
        db: AsyncSession,
        device_id: str,
    ) -> Device | None:
        """기기 ID로 기기를 조회합니다 (Retrieve a device by its opaque id)."""
        query: Select = (
            select(Device)
            .where(Device.device_id == device_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def create_if_absent(
        self,
        db: AsyncSession,
        obj_data: dict[str, Any],
    ) -> tuple[Device, bool]:
        """기기가 없으면 생성합니다 — ON CONFLICT DO NOTHING.

        Insert the device unless a row with the same `device_id` exists.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            obj_data: 기기 컬럼 값 (Device column values, `device_id` required)

        Returns:
            tuple[Device, bool]: 기기와 새로 생성 여부 (Device and whether it was created)
        """
        stmt = (
            self.insert_stmt(db)
            .values(**obj_data)
            .on_conflict_do_nothing(index_elements=["device_id"])
            .returning(Device.id)
        )
        inserted_id: UUID | None = (await db.execute(stmt)).scalar_one_or_none()
        query: Select = (
            select(Device)
            .where(Device.device_id == obj_data["device_id"])
            .execution_options(populate_existing=True)
        )
        device: Device = (await db.execute(query)).scalar_one()
        return device, inserted_id is not None

    async def upsert_link(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
    ) -> None:
        """기기-사용자 연결을 생성하거나 재활성화합니다.

        Insert the (device, user) link or reactivate the existing one in a
        single `INSERT .. ON CONFLICT DO UPDATE`.
        """
        now = utcnow()
        stmt = self.insert_stmt(db, DeviceUserLink).values(
            device_id=device_id,
            user_id=user_id,
            is_active=True,
            last_login_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["device_id", "user_id"],
            set_={"is_active": True, "last_login_at": now},
        )
        await db.execute(stmt)
        await db.flush()

    async def deactivate_link(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
    ) -> int:
        """연결을 비활성화합니다 — 기록은 삭제하지 않음.

        Mark the link inactive without deleting it.

        Returns:
            int: 변경된 행 수 (Rows updated)
        """
        stmt = (
            update(DeviceUserLink)
            .where(
                DeviceUserLink.device_id == device_id,
                DeviceUserLink.user_id == user_id,
                DeviceUserLink.is_active.is_(True),
            )
            .values(is_active=False)
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0

    async def get_link(
        self,
        db: AsyncSession,
        device_id: str,
        user_id: UUID,
    ) -> DeviceUserLink | None:
        query: Select = select(DeviceUserLink).where(
            DeviceUserLink.device_id == device_id,
            DeviceUserLink.user_id == user_id,
        ).execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def count_links(
        self,
        db: AsyncSession,
        device_id: str,
    ) -> int:
        """기기의 전체 연결 수 (Number of links of any state on a device)."""
        query: Select = (
            select(func.count())
            .select_from(DeviceUserLink)
            .where(DeviceUserLink.device_id == device_id)
        )
        return (await db.execute(query)).scalar() or 0

    async def record_login(
        self,
        db: AsyncSession,
        device_id: str,
        ip_address: str | None = None,
    ) -> None:
        """로그인 횟수와 활동 시각을 원자적으로 갱신합니다.

        Atomically bump `login_count` and the last-activity metadata.
        """
        values: dict[str, Any] = {
            "login_count": Device.login_count + 1,
            "last_active_at": utcnow(),
        }
        if ip_address:
            values["last_active_ip"] = ip_address
        stmt = update(Device).where(Device.device_id == device_id).values(**values)
        await db.execute(stmt)
        await db.flush()

    async def list_active_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
    ) -> list[tuple[Device, DeviceUserLink]]:
        """사용자가 활성 연결을 가진 기기 목록.

        Devices on which the user currently has an active link, most
        recently used first.
        """
        query: Select = (
            select(Device, DeviceUserLink)
            .join(DeviceUserLink, DeviceUserLink.device_id == Device.device_id)
            .where(
                DeviceUserLink.user_id == user_id,
                DeviceUserLink.is_active.is_(True),
                Device.is_active.is_(True),
            )
            .order_by(DeviceUserLink.last_login_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [(device, link) for device, link in result.all()]

    async def upsert_push_token(
        self,
        db: AsyncSession,
        device_id: str,
        token: str,
        token_type: str,
    ) -> None:
        """푸시 토큰 등록 — 같은 토큰은 재활성화.

        Register a push token on a device, reactivating a known one.
        """
        now = utcnow()
        stmt = self.insert_stmt(db, DevicePushToken).values(
            device_id=device_id,
            token=token,
            token_type=token_type,
            is_active=True,
            last_used_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["device_id", "token"],
            set_={"is_active": True, "token_type": token_type, "last_used_at": now},
        )
        await db.execute(stmt)
        await db.flush()

    async def list_push_tokens(
        self,
        db: AsyncSession,
        device_id: str,
    ) -> list[DevicePushToken]:
        query: Select = select(DevicePushToken).where(
            DevicePushToken.device_id == device_id,
            DevicePushToken.is_active.is_(True),
        )
        result = await db.execute(query)
        return list(result.scalars().all())


# 싱글턴 인스턴스 — Singleton instance
device_repository: DeviceRepository = DeviceRepository()
