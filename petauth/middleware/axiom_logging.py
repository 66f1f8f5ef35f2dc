"""Axiom API 로깅 미들웨어.

Axiom API logging middleware.
Captures request/response data for every API call: endpoint, method,
masked body, status code, error code, client IP and device id. Events go to
Axiom when it is configured, otherwise to the `petauth.access` logger.
Tokens, passwords, secrets and device fingerprints are masked.
"""

import json
import logging
import re
import time
from typing import Any

from axiom_py import Client as AxiomClient
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from petauth.config import Settings, settings

logger = logging.getLogger("petauth.access")

# 마스킹 대상 필드 패턴 — camelCase/snake_case 모두 (Fields to mask, either casing)
_SENSITIVE_KEYS = re.compile(
    r"(password|secret|token|authorization|api_?key|credential|fingerprint|signature)",
    re.IGNORECASE,
)

# 로깅 제외 경로 — Paths excluded from logging
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


def mask_sensitive(data: Any, depth: int = 0) -> Any:
    """민감 필드 자동 마스킹 — Recursively mask sensitive fields in dicts/lists."""
    if depth > 5:
        return "..."
    if isinstance(data, dict):
        return {
            k: "***" if _SENSITIVE_KEYS.search(k) else mask_sensitive(v, depth + 1)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [mask_sensitive(item, depth + 1) for item in data[:20]]
    return data


def _device_id(request: Request, body: Any) -> str | None:
    # 헤더 우선, 없으면 본문 — X-Device-Id header first, then the JSON body
    header: str | None = request.headers.get("x-device-id")
    if header:
        return header
    if isinstance(body, dict):
        value = body.get("deviceId") or body.get("device_id")
        return value if isinstance(value, str) else None
    return None


def _client_ip(request: Request) -> str | None:
    forwarded: str | None = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class AxiomLoggingMiddleware(BaseHTTPMiddleware):
    """모든 API 요청/응답을 로깅하는 미들웨어.

    Middleware that logs all API requests and responses.
    Captures: method, path, masked body, status code, error code, client IP
    and device id.
    """

    def __init__(self, app: Any, config: Settings = settings) -> None:
        super().__init__(app)
        self._client: AxiomClient | None = None
        self._dataset: str = config.AXIOM_DATASET

        if config.AXIOM_API_TOKEN and config.AXIOM_DATASET:
            self._client = AxiomClient(token=config.AXIOM_API_TOKEN)

    def _emit(self, event: dict[str, Any]) -> None:
        if self._client is None:
            logger.info(
                "%s %s %s %.2fms",
                event["method"], event["path"], event["status_code"], event["duration_ms"],
                extra={"event": event},
            )
            return
        try:
            self._client.ingest_events(self._dataset, [event])
        except Exception:
            # 로깅 실패가 요청 처리에 영향주지 않도록 — Never break a request on log failure
            logger.warning("Axiom ingest failed", exc_info=True)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        started: float = time.perf_counter()
        raw_body: Any = None
        if request.method in ("POST", "PUT", "PATCH"):
            raw_body = await _read_json_body(request)

        status_code: int = 500
        error_code: str | None = None
        error_message: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            if status_code >= 400:
                response, error_code, error_message = await _drain_error_body(response)
        except Exception as exc:
            error_message = f"{type(exc).__name__}: {str(exc)[:300]}"
            raise
        finally:
            event: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "client_ip": _client_ip(request),
            }
            device_id: str | None = _device_id(request, raw_body)
            if device_id:
                event["device_id"] = device_id
            if request.query_params:
                event["query_params"] = mask_sensitive(dict(request.query_params))
            if raw_body is not None:
                event["request_body"] = mask_sensitive(raw_body)
            if error_code:
                event["error_code"] = error_code
            if error_message:
                event["error"] = error_message
            self._emit(event)

        return response


async def _read_json_body(request: Request) -> Any:
    # 본문은 Starlette가 캐시하므로 라우터에서 다시 읽을 수 있음 — The body stays readable downstream
    body: bytes = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "(non-json body)"


async def _drain_error_body(response: Response) -> tuple[Response, str | None, str | None]:
    """오류 응답 본문에서 코드와 메시지 추출 후 응답을 다시 구성.

    Consume an error response's body, pull out `code` and `message`, and
    return an equivalent response carrying the same bytes.
    """
    chunks: list[bytes] = []
    async for chunk in response.body_iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
    content: bytes = b"".join(chunks)

    code: str | None = None
    try:
        payload: Any = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        message: str = content.decode("utf-8", errors="replace")[:500]
    else:
        if isinstance(payload, dict):
            code = payload.get("code")
            message = str(payload.get("message") or payload.get("detail") or payload)[:500]
        else:
            message = str(payload)[:500]

    rebuilt = Response(
        content=content,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
    )
    return rebuilt, code, message
