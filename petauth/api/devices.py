"""사용자 기기 라우터 — 내 기기 목록, 푸시 토큰 등록.

User Devices Router — The current user's device list and push token
registration.
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from petauth.api.deps import get_current_claims, get_session_service
from petauth.database import get_db
from petauth.schemas.common import MessageResponse
from petauth.schemas.device import DeviceListResponse, DeviceResponse, PushTokenRequest
from petauth.services.device_registry import DeviceSummary
from petauth.services.session_service import SessionService
from petauth.utils.exceptions import BadRequestError

router: APIRouter = APIRouter()


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> DeviceListResponse:
    """내 기기 목록 — 활성 연결과 기기별 활성 세션 수.

    Devices the current user is actively linked to, with live session
    counts. The device of the calling token is flagged `isCurrent`.
    """
    summaries: list[DeviceSummary] = await service.devices.list_active_devices(
        db, UUID(claims["id"])
    )
    return DeviceListResponse(
        devices=[DeviceResponse.from_summary(s, claims.get("deviceId")) for s in summaries]
    )


@router.post("/devices/push-token", response_model=MessageResponse)
async def register_push_token(
    data: PushTokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SessionService, Depends(get_session_service)],
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> MessageResponse:
    """푸시 토큰 등록 (Register an FCM / APNs push token on a device)."""
    device_id: str | None = data.device_id or claims.get("deviceId")
    if not device_id:
        raise BadRequestError("deviceId is required")
    await service.devices.add_push_token(
        db, device_id, UUID(claims["id"]), data.token, data.token_type
    )
    await db.commit()
    return MessageResponse(message="Push token registered")
