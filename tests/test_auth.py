"""인증 API 테스트 — 회원가입, 로그인, 토큰 갱신, 로그아웃, 검증.

Auth API tests — Registration, login, token refresh, logout and validation
through the HTTP surface, including the camelCase response shapes and the
structured error bodies.
"""

from datetime import timedelta

from httpx import AsyncClient

from tests.conftest import (
    APP_SIGNATURE,
    DEVICE_INFO,
    OWNER_PASSWORD,
    auth_header,
    make_token,
    mobile_login,
)

AUTH = "/api/v1/auth"


# ===== Registration =====

class TestMobileRegister:
    """보호자 회원가입 API 테스트."""

    async def test_register_success(self, client: AsyncClient):
        """회원가입 성공 — 201, camelCase 응답."""
        res = await client.post(f"{AUTH}/mobile-register", json={
            "email": "New@Vnipet.test",
            "password": "long-password",
            "name": "New Owner",
            "deviceInfo": DEVICE_INFO,
            "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 201, res.text
        data = res.json()
        assert data["success"] is True
        assert data["user"]["email"] == "new@vnipet.test"
        assert data["user"]["role"] == "petOwner"
        assert len(data["deviceId"]) == 32
        tokens = data["tokens"]
        assert set(tokens) >= {"accessToken", "refreshToken", "expiresIn", "refreshExpiresAt"}
        assert tokens["expiresIn"] == 900

    async def test_register_duplicate_email(self, client: AsyncClient, owner):
        res = await client.post(f"{AUTH}/mobile-register", json={
            "email": "owner@vnipet.test",
            "password": "long-password",
            "name": "Again",
            "deviceInfo": DEVICE_INFO,
            "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 409

    async def test_register_short_password(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/mobile-register", json={
            "email": "new@vnipet.test",
            "password": "short",
            "name": "New",
            "deviceInfo": DEVICE_INFO,
            "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 422

    async def test_register_rejects_unknown_signature(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/mobile-register", json={
            "email": "new@vnipet.test",
            "password": "long-password",
            "name": "New",
            "deviceInfo": DEVICE_INFO,
            "appSignature": "com.evil.clone",
        })
        assert res.status_code == 403
        assert res.json()["code"] == "INVALID_APP_SIGNATURE"


class TestDeviceRegister:
    """기기 등록 API 테스트."""

    async def test_anonymous_device_register(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/device-register", json={
            "deviceInfo": DEVICE_INFO,
            "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 201
        data = res.json()
        assert data["trustScore"] == 60
        assert data["isTrusted"] is True

    async def test_device_register_links_current_user(self, client: AsyncClient, service, owner):
        token = make_token(service, owner, "tablet-1")
        res = await client.post(
            f"{AUTH}/device-register",
            json={"deviceId": "tablet-1", "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE},
            headers=auth_header(token),
        )
        assert res.status_code == 201

        devices = await client.get(f"{AUTH}/devices", headers=auth_header(token))
        assert [d["deviceId"] for d in devices.json()["devices"]] == ["tablet-1"]


# ===== Login =====

class TestMobileLogin:
    """모바일 로그인 API 테스트."""

    async def test_login_success(self, client: AsyncClient, owner):
        data = await mobile_login(client, "owner@vnipet.test", "phone-1")
        assert data["success"] is True
        assert data["deviceId"] == "phone-1"
        assert data["user"]["id"] == str(owner.id)
        assert data["tokens"]["tokenType"] == "bearer"

    async def test_login_email_is_case_insensitive(self, client: AsyncClient, owner):
        await mobile_login(client, "OWNER@vnipet.test", "phone-1")

    async def test_wrong_password_and_unknown_email_look_the_same(self, client: AsyncClient, owner):
        """존재하지 않는 이메일과 잘못된 비밀번호는 같은 응답."""
        wrong = await client.post(f"{AUTH}/mobile-login", json={
            "email": "owner@vnipet.test", "password": "wrong-password", "deviceId": "phone-1",
            "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE,
        })
        unknown = await client.post(f"{AUTH}/mobile-login", json={
            "email": "nobody@vnipet.test", "password": "wrong-password", "deviceId": "phone-1",
            "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE,
        })
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {
            "success": False,
            "message": "Invalid email or password",
            "code": "INVALID_CREDENTIALS",
        }

    async def test_lockout_is_persisted(self, client: AsyncClient, db, owner):
        """실패 횟수는 오류 응답에도 커밋됨."""
        for _ in range(5):
            res = await client.post(f"{AUTH}/mobile-login", json={
                "email": "owner@vnipet.test", "password": "wrong-password", "deviceId": "phone-1",
                "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE,
            })
            assert res.status_code == 401

        res = await client.post(f"{AUTH}/mobile-login", json={
            "email": "owner@vnipet.test", "password": OWNER_PASSWORD, "deviceId": "phone-1",
            "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 423
        assert res.json()["code"] == "ACCOUNT_LOCKED"

        await db.refresh(owner)
        assert owner.failed_login_attempts == 5


# ===== Refresh =====

class TestRefreshToken:
    """토큰 갱신 API 테스트."""

    async def test_refresh_success(self, client: AsyncClient, owner):
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 200, res.text
        data = res.json()
        assert data["rotated"] is True
        assert data["tokens"]["refreshToken"] != login["tokens"]["refreshToken"]
        assert data["tokens"]["refreshExpiresAt"] >= login["tokens"]["refreshExpiresAt"]

        again = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert again.status_code == 401
        assert again.json()["code"] == "INVALID_REFRESH_TOKEN"

    async def test_refresh_from_other_device(self, client: AsyncClient, owner):
        """다른 기기에서 제시된 토큰 — 유효하지 않은 토큰과 구분 불가."""
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "attacker-device",
        })
        assert res.status_code == 401
        assert res.json()["code"] == "INVALID_REFRESH_TOKEN"

    async def test_refresh_missing_device_id(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/refresh-token", json={"refreshToken": "abc"})
        assert res.status_code == 422

    async def test_refresh_on_blocked_device(self, client: AsyncClient, service, db, owner):
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        device = await service.devices.repository.get_by_device_id(db, "phone-1")
        device.is_blocked = True
        await db.commit()

        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 403
        assert res.json()["code"] == "DEVICE_UNAUTHORIZED"


# ===== Logout =====

class TestLogout:
    """로그아웃 API 테스트."""

    async def test_logout_then_refresh_fails(self, client: AsyncClient, owner):
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(f"{AUTH}/logout", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 200
        assert res.json()["success"] is True

        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 401

    async def test_logout_unknown_token_still_succeeds(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/logout", json={"refreshToken": "never-issued"})
        assert res.status_code == 200
        assert res.json() == {"success": True, "message": "Logged out successfully"}

    async def test_logout_all(self, client: AsyncClient, owner):
        phone = await mobile_login(client, "owner@vnipet.test", "phone-1")
        await mobile_login(client, "owner@vnipet.test", "tablet-1")

        res = await client.post(
            f"{AUTH}/logout-all", headers=auth_header(phone["tokens"]["accessToken"])
        )
        assert res.status_code == 200
        assert res.json()["revokedCount"] == 2

    async def test_logout_all_requires_token(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/logout-all")
        assert res.status_code == 401
        assert res.json()["code"] == "INVALID_TOKEN"


# ===== Validate =====

class TestValidateToken:
    """액세스 토큰 검증 API 테스트."""

    async def test_validate_success(self, client: AsyncClient, owner):
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(
            f"{AUTH}/validate-token", headers=auth_header(login["tokens"]["accessToken"])
        )
        assert res.status_code == 200
        data = res.json()
        assert data["valid"] is True
        assert data["user"]["id"] == str(owner.id)
        assert data["user"]["deviceId"] == "phone-1"
        assert data["user"]["role"] == "petOwner"

    async def test_validate_expired(self, client: AsyncClient, service, owner):
        token = service.issuer.issue_access_token(
            {"id": str(owner.id), "role": owner.role, "email": owner.email, "deviceId": "phone-1"},
            ttl=timedelta(seconds=-5),
        )
        res = await client.post(f"{AUTH}/validate-token", headers=auth_header(token))
        assert res.status_code == 401
        assert res.json()["code"] == "TOKEN_EXPIRED"

    async def test_validate_garbage(self, client: AsyncClient):
        res = await client.post(f"{AUTH}/validate-token", headers=auth_header("garbage"))
        assert res.status_code == 401
        assert res.json()["code"] == "INVALID_TOKEN"


# ===== Devices =====

class TestDevices:
    """내 기기 목록 및 푸시 토큰 API 테스트."""

    async def test_list_devices(self, client: AsyncClient, owner):
        phone = await mobile_login(client, "owner@vnipet.test", "phone-1")
        await mobile_login(client, "owner@vnipet.test", "tablet-1")

        res = await client.get(f"{AUTH}/devices", headers=auth_header(phone["tokens"]["accessToken"]))
        assert res.status_code == 200
        devices = {d["deviceId"]: d for d in res.json()["devices"]}
        assert set(devices) == {"phone-1", "tablet-1"}
        assert devices["phone-1"]["isCurrent"] is True
        assert devices["tablet-1"]["isCurrent"] is False
        assert devices["phone-1"]["activeSessions"] == 1
        assert devices["phone-1"]["platform"] == "ios"

    async def test_push_token(self, client: AsyncClient, service, db, owner):
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(
            f"{AUTH}/devices/push-token",
            json={"token": "fcm-token-1"},
            headers=auth_header(login["tokens"]["accessToken"]),
        )
        assert res.status_code == 200
        tokens = await service.devices.repository.list_push_tokens(db, "phone-1")
        assert [t.token for t in tokens] == ["fcm-token-1"]

    async def test_push_token_on_foreign_device(self, client: AsyncClient, second_owner, owner):
        await mobile_login(client, "family@vnipet.test", "tablet-1")
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(
            f"{AUTH}/devices/push-token",
            json={"deviceId": "tablet-1", "token": "fcm-token-1"},
            headers=auth_header(login["tokens"]["accessToken"]),
        )
        assert res.status_code == 403


class TestHealth:
    async def test_health(self, client: AsyncClient):
        res = await client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}
