"""FastAPI 애플리케이션 엔트리포인트 — 미들웨어, 라우터, 백그라운드 작업 등록.

FastAPI application entry point — Middleware, router and background task
registration.

The session components are wired once in `create_app` around an immutable
`SessionPolicy` and exposed through `app.state.session_service`. The
lifespan runs the periodic refresh token cleanup.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from petauth.api import admin_router, auth_router
from petauth.config import SessionPolicy, Settings, settings
from petauth.database import async_session
from petauth.middleware.axiom_logging import AxiomLoggingMiddleware
from petauth.schemas.common import ErrorResponse
from petauth.services import build_session_service
from petauth.services.session_service import SessionService
from petauth.services.token_cleanup import run_cleanup_loop
from petauth.utils.exceptions import SessionError
from petauth.utils.logging import setup_logging

logger = logging.getLogger(__name__)


async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    """세션 오류를 구조화된 응답으로 변환 (Render a SessionError as a structured body)."""
    body = ErrorResponse(message=str(exc.detail), code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(by_alias=True))


def create_app(config: Settings = settings, policy: SessionPolicy | None = None) -> FastAPI:
    """애플리케이션을 생성합니다.

    Build the FastAPI application.

    Args:
        config: 애플리케이션 설정 (Application settings)
        policy: 세션 정책, 생략 시 설정에서 생성 (Session policy; built from settings when None)

    Returns:
        FastAPI: 구성된 애플리케이션 (Configured application)
    """
    setup_logging(config.LOG_LEVEL)
    session_service: SessionService = build_session_service(policy or SessionPolicy.from_settings(config))

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cleanup_task: asyncio.Task | None = None
        if config.TOKEN_CLEANUP_ENABLED:
            cleanup_task = asyncio.create_task(
                run_cleanup_loop(
                    async_session,
                    session_service.store,
                    config.TOKEN_CLEANUP_INTERVAL_HOURS * 3600,
                )
            )
            logger.info("Token cleanup scheduled every %d hours", config.TOKEN_CLEANUP_INTERVAL_HOURS)

        yield

        if cleanup_task is not None:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task

    app: FastAPI = FastAPI(
        title=config.APP_NAME,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.session_service = session_service

    # Axiom API 로깅 미들웨어 — Axiom API request/response logging
    # CORS보다 먼저 등록하여 모든 요청을 캡처 (Registered before CORS to capture all requests)
    app.add_middleware(AxiomLoggingMiddleware, config=config)

    # CORS 미들웨어 — Cross-Origin Resource Sharing middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SessionError, session_error_handler)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """서버 상태 확인 엔드포인트.

        Health check endpoint for load balancers and monitoring.
        """
        return {"status": "ok"}

    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(admin_router, prefix="/api/v1/admin")
    return app


app: FastAPI = create_app()
