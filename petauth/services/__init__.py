"""서비스 패키지 — 비즈니스 로직 계층.

Service package — Business logic layer.
Services call repositories for DB operations; routers own the commit.
`build_session_service` wires the session components around one immutable
policy.
"""

from petauth.config import SessionPolicy
from petauth.repositories.refresh_token_repository import RefreshTokenStore
from petauth.services.device_registry import DeviceRegistry
from petauth.services.session_service import SessionService
from petauth.services.token_issuer import TokenIssuer


def build_session_service(policy: SessionPolicy) -> SessionService:
    """정책 하나로 세션 컴포넌트를 조립합니다 (Wire the session components)."""
    store = RefreshTokenStore(policy)
    issuer = TokenIssuer(policy, store)
    devices = DeviceRegistry(policy, store)
    return SessionService(policy, store, issuer, devices)
