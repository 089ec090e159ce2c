"""LoggingMiddleware -- 请求级日志

每个请求绑定一个 request_id（调用方通过 X-Request-ID 传入则沿用，否则生成 ULID），
写入 structlog contextvars，同一请求内的服务与 Agent 日志都带上它，
并在响应头 X-Request-ID 中返回。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LEN = 64

log = structlog.get_logger()


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if incoming and len(incoming) <= _MAX_REQUEST_ID_LEN:
        return incoming
    return str(ULID())


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = _request_id(request)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.monotonic()
        response = await call_next(request)
        duration_ms = int((time.monotonic() - started) * 1000)

        if response.status_code >= 500:
            await log.awarning(
                "request_failed", status_code=response.status_code, duration_ms=duration_ms
            )
        else:
            await log.ainfo(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
