"""만료 토큰 정리 작업 — 주기적 리프레시 토큰 삭제.

Expired token sweep — Periodically deletes expired refresh tokens and revoked
ones past the retention window. Each run uses its own session and commits
on its own; runs may be skipped or overlap safely.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from petauth.repositories.refresh_token_repository import RefreshTokenStore

logger = logging.getLogger(__name__)

# 최소 주기 — Lower bound on the sweep interval
_MIN_INTERVAL_SECONDS: float = 60.0


async def run_cleanup_once(
    session_factory: async_sessionmaker[AsyncSession],
    store: RefreshTokenStore,
) -> int:
    """정리 작업을 한 번 실행합니다.

    Run one sweep in a fresh session and commit it.

    Returns:
        int: 삭제된 토큰 수 (Number of tokens deleted)
    """
    async with session_factory() as db:
        deleted: int = await store.cleanup_expired(db)
        await db.commit()
    logger.info("Token cleanup deleted %d refresh tokens", deleted)
    return deleted


async def run_cleanup_loop(
    session_factory: async_sessionmaker[AsyncSession],
    store: RefreshTokenStore,
    interval_seconds: float,
) -> None:
    """취소될 때까지 주기적으로 정리 작업을 실행합니다.

    Sweep every `interval_seconds` until cancelled. A failed run is logged
    and the loop carries on.
    """
    interval: float = max(interval_seconds, _MIN_INTERVAL_SECONDS)
    try:
        while True:
            try:
                await run_cleanup_once(session_factory, store)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Token cleanup run failed")
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("Token cleanup task cancelled")
        raise
