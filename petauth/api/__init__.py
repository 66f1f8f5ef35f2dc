"""API 라우터 패키지 — 모든 엔드포인트 통합.

API Router package — Aggregates the endpoints into routers for inclusion in
the FastAPI application.

Included routers:
    - auth: 모바일 인증 (Mobile registration, login, refresh, logout, validate)
    - devices: 내 기기 및 푸시 토큰 (My devices and push tokens)
    - admin: 관리자 기기 차단/해제/폐기 (Admin device block/unblock/revoke)
"""

from fastapi import APIRouter

from petauth.api.admin import router as admin_devices_router
from petauth.api.auth import router as mobile_auth_router
from petauth.api.devices import router as devices_router

# 인증 라우터 — /api/v1/auth
auth_router: APIRouter = APIRouter()
auth_router.include_router(mobile_auth_router, tags=["Auth"])
auth_router.include_router(devices_router, tags=["Devices"])

# 관리자 라우터 — /api/v1/admin
admin_router: APIRouter = APIRouter()
admin_router.include_router(admin_devices_router, prefix="/devices", tags=["Admin Devices"])
