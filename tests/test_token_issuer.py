"""토큰 발급기 테스트 — 액세스 토큰 검증, 리프레시 토큰 발급/검증/회전.

TokenIssuer tests — Access token verification, refresh token issuance,
verification and rotation.
"""

import dataclasses
from datetime import timedelta

import jwt
import pytest

from petauth.repositories.refresh_token_repository import RefreshTokenStore, hash_token
from petauth.services.token_issuer import (
    ExpiredAccessTokenError,
    InvalidAccessTokenError,
    TokenIssuer,
)
from petauth.utils.clock import utcnow
from petauth.utils.exceptions import DuplicateRefreshTokenError
from tests.conftest import REGISTRY_INFO

CLAIMS = {"id": "user-1", "role": "petOwner", "email": "owner@vnipet.test", "deviceId": "device-1"}


# ===== Access Tokens =====

class TestAccessToken:
    """액세스 토큰 발급 및 검증 테스트."""

    def test_roundtrip_adds_type_and_times(self, service):
        token = service.issuer.issue_access_token(CLAIMS)
        claims = service.issuer.verify_access_token(token)
        assert claims["id"] == "user-1"
        assert claims["deviceId"] == "device-1"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_lifetime_is_not_special_cased_per_role(self, service):
        """역할과 무관하게 짧은 수명."""
        owner = service.issuer.verify_access_token(service.issuer.issue_access_token(CLAIMS))
        admin = service.issuer.verify_access_token(
            service.issuer.issue_access_token({**CLAIMS, "role": "admin"})
        )
        assert owner["exp"] - owner["iat"] == admin["exp"] - admin["iat"] == 15 * 60

    def test_expired_token(self, service):
        token = service.issuer.issue_access_token(CLAIMS, ttl=timedelta(seconds=-5))
        with pytest.raises(ExpiredAccessTokenError):
            service.issuer.verify_access_token(token)

    def test_forged_signature(self, service):
        token = jwt.encode({**CLAIMS, "type": "access"}, "someone-else", algorithm="HS256")
        with pytest.raises(InvalidAccessTokenError) as exc_info:
            service.issuer.verify_access_token(token)
        assert exc_info.value.reason == "signature"

    def test_malformed_token(self, service):
        with pytest.raises(InvalidAccessTokenError) as exc_info:
            service.issuer.verify_access_token("not-a-jwt")
        assert exc_info.value.reason == "malformed"

    def test_wrong_type(self, service, policy):
        token = jwt.encode({**CLAIMS, "type": "refresh"}, policy.jwt_secret_key, algorithm="HS256")
        with pytest.raises(InvalidAccessTokenError) as exc_info:
            service.issuer.verify_access_token(token)
        assert exc_info.value.reason == "type"

    def test_validate_is_tristate(self, service):
        valid = service.issuer.validate_access_token(service.issuer.issue_access_token(CLAIMS))
        expired = service.issuer.validate_access_token(
            service.issuer.issue_access_token(CLAIMS, ttl=timedelta(seconds=-5))
        )
        invalid = service.issuer.validate_access_token("garbage")
        assert (valid.status, expired.status, invalid.status) == ("valid", "expired", "invalid")
        assert valid.is_valid and valid.claims["id"] == "user-1"
        assert expired.claims is None

    def test_previous_key_accepted_during_grace_period(self, policy):
        """키 교체 후에도 이전 키로 서명된 토큰 검증."""
        old_issuer = TokenIssuer(policy, RefreshTokenStore(policy))
        token = old_issuer.issue_access_token(CLAIMS)

        rotated = dataclasses.replace(
            policy, jwt_secret_key="new-secret", jwt_previous_secret_keys=(policy.jwt_secret_key,)
        )
        new_issuer = TokenIssuer(rotated, RefreshTokenStore(rotated))
        assert new_issuer.verify_access_token(token)["id"] == "user-1"

        # 유예 기간 종료 — Grace period over
        retired = dataclasses.replace(rotated, jwt_previous_secret_keys=())
        with pytest.raises(InvalidAccessTokenError):
            TokenIssuer(retired, RefreshTokenStore(retired)).verify_access_token(token)


# ===== Refresh Tokens =====

class TestRefreshToken:
    """리프레시 토큰 발급 및 검증 테스트."""

    async def test_token_is_opaque_and_stored_hashed(self, db, service, owner):
        issued = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1", REGISTRY_INFO)
        assert len(issued.token) == 128
        assert issued.token.count(".") == 0

        record = await service.store.find_by_token(db, issued.token)
        assert record is not None
        assert record.token_hash == hash_token(issued.token)
        assert record.token_hash != issued.token
        assert record.device_info["platform"] == "ios"

    async def test_omitted_family_starts_new_session(self, db, service, owner):
        first = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")
        second = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")
        continued = await service.issuer.issue_refresh_token(
            db, owner.id, owner.role, "device-1", token_family=first.token_family
        )
        assert first.token_family != second.token_family
        assert continued.token_family == first.token_family

    async def test_verify_returns_owner(self, db, service, owner):
        pair = await service.issuer.issue_token_pair(db, owner, owner.role, "device-1")
        data = await service.issuer.verify_refresh_token(db, pair.refresh_token)
        assert data.user_id == owner.id
        assert data.device_id == "device-1"
        assert data.token_family == pair.token_family
        assert pair.expires_in == 15 * 60

    async def test_verify_unknown_token_is_none(self, db, service):
        assert await service.issuer.verify_refresh_token(db, "0" * 128) is None
        assert await service.issuer.verify_refresh_token(db, "") is None

    async def test_expired_token_only_visible_with_ignore_expiry(self, db, service, owner):
        await service.store.create(db, {
            "token": "expired-token",
            "user_id": owner.id,
            "user_type": owner.role,
            "device_id": "device-1",
            "token_family": "family-1",
            "expires_at": utcnow() - timedelta(minutes=1),
        })
        assert await service.issuer.verify_refresh_token(db, "expired-token") is None
        data = await service.issuer.verify_refresh_token(db, "expired-token", ignore_expiry=True)
        assert data is not None and data.user_id == owner.id

    async def test_revoked_token_never_verifies(self, db, service, owner):
        pair = await service.issuer.issue_token_pair(db, owner, owner.role, "device-1")
        await service.store.revoke(db, pair.refresh_token, "test")
        assert await service.issuer.verify_refresh_token(db, pair.refresh_token) is None
        assert await service.issuer.verify_refresh_token(db, pair.refresh_token, ignore_expiry=True) is None

    async def test_collision_is_retried(self, db, service, owner, monkeypatch):
        """충돌 시 새 토큰으로 재시도."""
        taken = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")
        candidates = iter([taken.token, "fresh-token-value"])
        monkeypatch.setattr(
            "petauth.services.token_issuer.generate_refresh_token", lambda: next(candidates)
        )
        issued = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")
        assert issued.token == "fresh-token-value"

    async def test_collision_gives_up_after_retries(self, db, service, owner, monkeypatch):
        taken = await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")
        monkeypatch.setattr(
            "petauth.services.token_issuer.generate_refresh_token", lambda: taken.token
        )
        with pytest.raises(DuplicateRefreshTokenError):
            await service.issuer.issue_refresh_token(db, owner.id, owner.role, "device-1")


# ===== Rotation =====

class TestRotation:
    """회전 정책 테스트."""

    async def test_rotate_every_time(self, db, service, owner):
        pair = await service.issuer.issue_token_pair(db, owner, owner.role, "device-1")
        record = await service.issuer.verify_refresh_token(db, pair.refresh_token)

        rotated = await service.issuer.rotate_on_refresh(db, record, owner, "10.0.0.1")
        assert rotated.rotated is True
        assert rotated.refresh_token != pair.refresh_token
        assert rotated.token_family == pair.token_family
        assert rotated.refresh_expires_at > pair.refresh_expires_at
        assert await service.issuer.verify_refresh_token(db, pair.refresh_token) is None
        assert await service.issuer.verify_refresh_token(db, rotated.refresh_token) is not None

    async def test_rotate_after_n_uses(self, db, policy, owner):
        """N회 사용 전까지는 같은 리프레시 토큰을 반환."""
        heuristic = dataclasses.replace(policy, rotate_after_uses=5)
        store = RefreshTokenStore(heuristic)
        issuer = TokenIssuer(heuristic, store)
        pair = await issuer.issue_token_pair(db, owner, owner.role, "device-1")

        for use in range(1, 5):
            record = await issuer.verify_refresh_token(db, pair.refresh_token)
            result = await issuer.rotate_on_refresh(db, record, owner)
            assert result.rotated is False, use
            assert result.refresh_token == pair.refresh_token
            assert issuer.verify_access_token(result.access_token)["id"] == str(owner.id)

        record = await issuer.verify_refresh_token(db, pair.refresh_token)
        assert record.usage_count == 4
        fifth = await issuer.rotate_on_refresh(db, record, owner)
        assert fifth.rotated is True
        assert fifth.refresh_token != pair.refresh_token
        assert await issuer.verify_refresh_token(db, pair.refresh_token) is None

    async def test_usage_is_recorded(self, db, service, owner):
        pair = await service.issuer.issue_token_pair(db, owner, owner.role, "device-1")
        record = await service.issuer.verify_refresh_token(db, pair.refresh_token)
        await service.issuer.rotate_on_refresh(db, record, owner, "10.0.0.9")

        stored = await service.store.find_by_token(db, pair.refresh_token)
        assert stored.usage_count == 1
        assert stored.last_used_ip == "10.0.0.9"
        assert stored.last_used_at is not None
