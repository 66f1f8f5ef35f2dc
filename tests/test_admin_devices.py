"""관리자 기기 API 테스트 — 차단, 차단 해제, 폐기, 권한.

Admin device API tests — Block, unblock, revoke and role enforcement.
"""

from httpx import AsyncClient

from tests.conftest import APP_SIGNATURE, DEVICE_INFO, auth_header, make_token, mobile_login

ADMIN_DEVICES = "/api/v1/admin/devices"
AUTH = "/api/v1/auth"


class TestBlockDevice:
    """기기 차단 테스트."""

    async def test_block_revokes_sessions(self, client: AsyncClient, owner, admin_token):
        """차단 즉시 해당 기기의 모든 세션 갱신 불가."""
        login = await mobile_login(client, "owner@vnipet.test", "phone-1")

        res = await client.post(
            f"{ADMIN_DEVICES}/phone-1/block",
            json={"reason": "Reported stolen"},
            headers=auth_header(admin_token),
        )
        assert res.status_code == 200, res.text
        data = res.json()
        assert data["isBlocked"] is True
        assert data["isActive"] is False
        assert data["revokedTokens"] == 1

        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 401

    async def test_block_without_body_uses_default_reason(self, client: AsyncClient, service, db, owner, admin_token):
        await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(admin_token))
        assert res.status_code == 200

        device = await service.devices.repository.get_by_device_id(db, "phone-1")
        assert device.blocked_reason == "Blocked by administrator"

    async def test_blocked_device_cannot_log_in(self, client: AsyncClient, owner, admin_token):
        await mobile_login(client, "owner@vnipet.test", "phone-1")
        await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(admin_token))

        res = await client.post(f"{AUTH}/mobile-login", json={
            "email": "owner@vnipet.test",
            "password": "owner-pass-123",
            "deviceId": "phone-1",
        })
        assert res.status_code == 403
        assert res.json()["code"] == "DEVICE_UNAUTHORIZED"

    async def test_blocked_device_cannot_register_account(self, client: AsyncClient, owner, admin_token):
        """차단된 기기에서 신규 가입 불가 — 계정도 생성되지 않음."""
        await mobile_login(client, "owner@vnipet.test", "phone-1")
        await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(admin_token))

        res = await client.post(f"{AUTH}/mobile-register", json={
            "email": "fresh@vnipet.test",
            "password": "long-password",
            "name": "Fresh",
            "deviceId": "phone-1",
            "deviceInfo": DEVICE_INFO,
            "appSignature": APP_SIGNATURE,
        })
        assert res.status_code == 403
        assert res.json()["code"] == "DEVICE_UNAUTHORIZED"

        login = await client.post(f"{AUTH}/mobile-login", json={
            "email": "fresh@vnipet.test",
            "password": "long-password",
        })
        assert login.status_code == 401

    async def test_blocked_device_cannot_be_relinked(self, client: AsyncClient, service, owner, admin_token):
        await mobile_login(client, "owner@vnipet.test", "phone-1")
        await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(admin_token))

        res = await client.post(
            f"{AUTH}/device-register",
            json={"deviceId": "phone-1", "deviceInfo": DEVICE_INFO, "appSignature": APP_SIGNATURE},
            headers=auth_header(make_token(service, owner, "phone-1")),
        )
        assert res.status_code == 403
        assert res.json()["code"] == "DEVICE_UNAUTHORIZED"

    async def test_block_unknown_device(self, client: AsyncClient, admin_token):
        res = await client.post(f"{ADMIN_DEVICES}/ghost/block", headers=auth_header(admin_token))
        assert res.status_code == 404
        assert res.json()["code"] == "NOT_FOUND"


class TestUnblockAndRevoke:
    """차단 해제 및 폐기 테스트."""

    async def test_unblock_allows_new_login(self, client: AsyncClient, owner, admin_token):
        await mobile_login(client, "owner@vnipet.test", "phone-1")
        await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(admin_token))

        res = await client.post(f"{ADMIN_DEVICES}/phone-1/unblock", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["isBlocked"] is False
        assert res.json()["isActive"] is True

        login = await mobile_login(client, "owner@vnipet.test", "phone-1")
        res = await client.post(f"{AUTH}/refresh-token", json={
            "refreshToken": login["tokens"]["refreshToken"],
            "deviceId": "phone-1",
        })
        assert res.status_code == 200

    async def test_revoke_device(self, client: AsyncClient, owner, second_owner, admin_token):
        await mobile_login(client, "owner@vnipet.test", "tablet-1")
        await mobile_login(client, "family@vnipet.test", "tablet-1")

        res = await client.post(f"{ADMIN_DEVICES}/tablet-1/revoke", headers=auth_header(admin_token))
        assert res.status_code == 200
        data = res.json()
        assert data["revokedTokens"] == 2
        assert data["isActive"] is False
        assert data["isBlocked"] is False


class TestAdminAuthorization:
    """관리자 권한 검사 테스트."""

    async def test_pet_owner_forbidden(self, client: AsyncClient, service, owner):
        token = make_token(service, owner, "phone-1")
        res = await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(token))
        assert res.status_code == 403
        assert res.json()["code"] == "FORBIDDEN"

    async def test_forged_admin_role_forbidden(self, client: AsyncClient, service, owner):
        """토큰의 역할만 admin이고 DB 사용자는 보호자인 경우."""
        token = service.issuer.issue_access_token({
            "id": str(owner.id), "role": "admin", "email": owner.email, "deviceId": "phone-1",
        })
        res = await client.post(f"{ADMIN_DEVICES}/phone-1/block", headers=auth_header(token))
        assert res.status_code == 403

    async def test_missing_token(self, client: AsyncClient):
        res = await client.post(f"{ADMIN_DEVICES}/phone-1/block")
        assert res.status_code == 401
