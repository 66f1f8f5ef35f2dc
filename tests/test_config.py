"""세션 정책 생성 테스트.

SessionPolicy construction from Settings.
"""

from datetime import timedelta

from petauth.config import SessionPolicy, Settings


def _settings(**overrides) -> Settings:
    values = {
        "JWT_SECRET_KEY": "current-key",
        "JWT_PREVIOUS_SECRET_KEYS": ["old-key"],
        "JWT_ACCESS_TOKEN_EXPIRE_MINUTES": 15,
        "JWT_REFRESH_TOKEN_EXPIRE_DAYS": 30,
        "REFRESH_ROTATE_AFTER_USES": 5,
        "LOGIN_MAX_FAILED_ATTEMPTS": 5,
        "LOGIN_LOCKOUT_MINUTES": 120,
        "APP_SIGNATURES": {"ios": ["com.vnipet.app"]},
    }
    values.update(overrides)
    return Settings(**values)


def test_policy_from_settings():
    policy = SessionPolicy.from_settings(_settings())
    assert policy.jwt_secret_key == "current-key"
    assert policy.jwt_previous_secret_keys == ("old-key",)
    assert policy.access_token_ttl == timedelta(minutes=15)
    assert policy.refresh_token_ttl == timedelta(days=30)
    assert policy.rotate_after_uses == 5
    assert policy.app_signatures == {"ios": ("com.vnipet.app",)}
    assert policy.lockout_duration == timedelta(hours=2)


def test_rotate_after_uses_has_floor_of_one():
    """0 이하 설정은 매 갱신 회전으로 처리."""
    policy = SessionPolicy.from_settings(_settings(REFRESH_ROTATE_AFTER_USES=0))
    assert policy.rotate_after_uses == 1
