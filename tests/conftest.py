"""테스트 인프라 — 임시 DB, 세션, 세션 서비스, httpx 클라이언트 픽스처.

Test infrastructure — Temporary DB, session, session service, and httpx
client fixtures. `TEST_DATABASE_URL` selects the database; by default each
test gets its own SQLite file through aiosqlite. The schema is created and
dropped around every test.
"""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from petauth.config import SessionPolicy
from petauth.database import Base, get_db
from petauth.main import create_app
from petauth.models import *  # noqa: F401,F403 — register all models with metadata
from petauth.models.user import ROLE_ADMIN, ROLE_PET_OWNER, User
from petauth.services import build_session_service
from petauth.services.session_service import SessionService
from petauth.utils.password import hash_password

# ---------------------------------------------------------------------------
# 테스트 상수 — Shared test data
# ---------------------------------------------------------------------------
APP_SIGNATURE = "com.vnipet.app"
OWNER_PASSWORD = "owner-pass-123"
ADMIN_PASSWORD = "admin-pass-123"

# 클라이언트 형식(camelCase) 기기 정보 — Device info as the mobile app sends it
DEVICE_INFO: dict[str, Any] = {
    "platform": "ios",
    "osVersion": "17.2",
    "appVersion": "2.4.0",
    "deviceModel": "iPhone15,2",
    "deviceName": "Family iPad",
}

# 레지스트리 형식(snake_case) — The same info as the registry receives it
REGISTRY_INFO: dict[str, Any] = {
    "platform": "ios",
    "os_version": "17.2",
    "app_version": "2.4.0",
    "device_model": "iPhone15,2",
    "device_name": "Family iPad",
}


# ---------------------------------------------------------------------------
# Function-scoped: 엔진, 세션, 서비스, 클라이언트
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """테스트용 async 엔진 — 스키마 생성 후 종료 시 삭제."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'petauth.db'}"
    eng = create_async_engine(url, echo=False)

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """각 테스트에 격리된 DB 세션을 제공합니다."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def policy() -> SessionPolicy:
    """테스트 정책 — 매 갱신마다 회전 (Rotate on every refresh)."""
    return SessionPolicy(
        jwt_secret_key="test-secret-key",
        jwt_algorithm="HS256",
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=30),
        rotate_after_uses=1,
        revoked_retention=timedelta(days=30),
        trust_threshold=30,
        app_signatures={"ios": (APP_SIGNATURE,), "android": (APP_SIGNATURE,)},
        enforce_app_signature=True,
        max_failed_logins=5,
        lockout_duration=timedelta(hours=2),
    )


@pytest.fixture
def service(policy: SessionPolicy) -> SessionService:
    return build_session_service(policy)


@pytest.fixture
def app(service: SessionService, policy: SessionPolicy) -> FastAPI:
    application = create_app(policy=policy)
    application.state.session_service = service
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI, db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI 테스트 클라이언트 — DB 세션을 오버라이드합니다."""
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# 헬퍼 픽스처: 테스트용 사용자 생성
# ---------------------------------------------------------------------------
async def make_user(
    db: AsyncSession,
    email: str,
    password: str = OWNER_PASSWORD,
    role: str = ROLE_PET_OWNER,
) -> User:
    user = User(email=email, name=email.split("@")[0], password_hash=hash_password(password), role=role)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def owner(db: AsyncSession) -> User:
    """보호자 사용자를 생성합니다."""
    user = await make_user(db, "owner@vnipet.test")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def second_owner(db: AsyncSession) -> User:
    """같은 기기를 공유하는 두 번째 보호자 (A family member sharing the device)."""
    user = await make_user(db, "family@vnipet.test")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    """관리자 사용자를 생성합니다."""
    user = await make_user(db, "admin@vnipet.test", ADMIN_PASSWORD, ROLE_ADMIN)
    await db.commit()
    return user


def make_token(service: SessionService, user: User, device_id: str = "admin-console") -> str:
    """테스트용 JWT 액세스 토큰을 생성합니다."""
    return service.issuer.issue_access_token({
        "id": str(user.id),
        "role": user.role,
        "email": user.email,
        "deviceId": device_id,
    })


@pytest.fixture
def admin_token(service: SessionService, admin_user: User) -> str:
    return make_token(service, admin_user)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def mobile_login(
    client: AsyncClient,
    email: str,
    device_id: str,
    password: str = OWNER_PASSWORD,
) -> dict[str, Any]:
    """API 로그인 후 응답 JSON 반환 (Log in through the API and return the body)."""
    res = await client.post("/api/v1/auth/mobile-login", json={
        "email": email,
        "password": password,
        "deviceId": device_id,
        "deviceInfo": DEVICE_INFO,
        "appSignature": APP_SIGNATURE,
    })
    assert res.status_code == 200, res.text
    return res.json()
