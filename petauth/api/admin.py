"""관리자 기기 라우터 — 기기 차단, 차단 해제, 폐기.

Admin Devices Router — Block, unblock and revoke devices. Blocking and
revoking cascade to every refresh token of the device in one commit.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.api.deps import get_session_service, require_admin
from petauth.database import get_db
from petauth.models.device import Device
from petauth.models.user import User
from petauth.schemas.device import AdminDeviceResponse, BlockDeviceRequest
from petauth.services.session_service import SessionService

router: APIRouter = APIRouter()


@router.post("/{device_id}/block", response_model=AdminDeviceResponse)
async def block_device(
    device_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    current_user: Annotated[User, Depends(require_admin)],
    data: BlockDeviceRequest | None = None,
) -> AdminDeviceResponse:
    """기기 차단 — 모든 세션 즉시 갱신 불가.

    Block a device; every refresh token bound to it is revoked.
    """
    reason: str = data.reason if data else BlockDeviceRequest().reason
    revoked: int = await service.devices.block(db, device_id, reason)
    await db.commit()
    return AdminDeviceResponse(device_id=device_id, is_active=False, is_blocked=True, revoked_tokens=revoked)


@router.post("/{device_id}/unblock", response_model=AdminDeviceResponse)
async def unblock_device(
    device_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    current_user: Annotated[User, Depends(require_admin)],
) -> AdminDeviceResponse:
    """기기 차단 해제 (Unblock a device; users must log in again)."""
    device: Device = await service.devices.unblock(db, device_id)
    await db.commit()
    return AdminDeviceResponse(
        device_id=device.device_id, is_active=device.is_active, is_blocked=device.is_blocked
    )


@router.post("/{device_id}/revoke", response_model=AdminDeviceResponse)
async def revoke_device(
    device_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    current_user: Annotated[User, Depends(require_admin)],
) -> AdminDeviceResponse:
    """기기 폐기 — 비활성화 및 토큰 폐기 (Deactivate a device and revoke its tokens)."""
    revoked: int = await service.devices.revoke_device(db, device_id)
    await db.commit()
    return AdminDeviceResponse(device_id=device_id, is_active=False, is_blocked=False, revoked_tokens=revoked)
