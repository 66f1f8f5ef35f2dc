"""기기 관련 Pydantic 요청/응답 스키마 정의.

Device-related Pydantic request/response schema definitions.
Covers device registration, the user's device list, push tokens and the
admin block/unblock/revoke actions.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from petauth.schemas.common import CamelModel
from petauth.services.device_registry import DeviceSummary


class DeviceInfo(CamelModel):
    """클라이언트가 보고하는 기기 정보 — 설명용, 보안 판단에 쓰이지 않음.

    Client-reported device info. Descriptive only, except the jailbreak and
    biometric flags which feed the trust score.
    """

    platform: Literal["ios", "android", "web", "other"] = "other"
    os_version: str | None = None
    app_version: str | None = None
    device_model: str | None = None
    device_name: str | None = None
    manufacturer: str | None = None
    is_tablet: bool = False
    user_agent: str | None = None
    device_fingerprint: str | None = None
    is_jailbroken: bool = False
    has_biometric: bool = False
    biometric_type: Literal["none", "fingerprint", "face", "iris"] = "none"
    is_biometric_enabled: bool = False

    def to_registry(self) -> dict[str, Any]:
        """레지스트리용 snake_case 딕셔너리 — 보낸 필드만 (Fields the client actually sent)."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class DeviceRegisterRequest(CamelModel):
    """기기 등록 요청 스키마.

    Attributes:
        device_id: 기기 ID — 생략 시 서버가 생성 (Device id, minted by the server when omitted)
        device_info: 기기 정보 (Device info)
        app_signature: 앱 서명 — 플랫폼별 허용 목록으로 검증 (Checked against the allow-list)
    """

    device_id: str | None = Field(default=None, max_length=128)
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    app_signature: str | None = None


class DeviceRegisterResponse(CamelModel):
    success: bool = True
    device_id: str
    trust_score: int
    is_trusted: bool


class DeviceResponse(CamelModel):
    """사용자 기기 목록 항목 (One entry of the user's device list)."""

    device_id: str
    platform: str
    device_name: str | None
    device_model: str | None
    os_version: str | None
    app_version: str | None
    trust_score: int
    is_blocked: bool
    last_active_at: datetime | None
    last_login_at: datetime | None
    active_sessions: int
    is_current: bool = False

    @classmethod
    def from_summary(cls, summary: DeviceSummary, current_device_id: str | None = None) -> "DeviceResponse":
        device = summary.device
        return cls(
            device_id=device.device_id,
            platform=device.platform,
            device_name=device.device_name,
            device_model=device.device_model,
            os_version=device.os_version,
            app_version=device.app_version,
            trust_score=device.trust_score,
            is_blocked=device.is_blocked,
            last_active_at=device.last_active_at,
            last_login_at=summary.link.last_login_at,
            active_sessions=summary.active_sessions,
            is_current=device.device_id == current_device_id,
        )


class DeviceListResponse(CamelModel):
    success: bool = True
    devices: list[DeviceResponse]


class PushTokenRequest(CamelModel):
    """푸시 토큰 등록 요청 — device_id 생략 시 액세스 토큰의 기기 사용.

    Push token registration; the access token's device is used when
    `device_id` is omitted.
    """

    device_id: str | None = None
    token: str = Field(min_length=1, max_length=512)
    token_type: Literal["fcm", "apns"] = "fcm"


class BlockDeviceRequest(CamelModel):
    reason: str = Field(default="Blocked by administrator", max_length=255)


class AdminDeviceResponse(CamelModel):
    """관리자 기기 조치 응답 (Admin device action result).

    Attributes:
        revoked_tokens: 함께 폐기된 리프레시 토큰 수 (Refresh tokens revoked by the action)
    """

    success: bool = True
    device_id: str
    is_active: bool
    is_blocked: bool
    revoked_tokens: int = 0
