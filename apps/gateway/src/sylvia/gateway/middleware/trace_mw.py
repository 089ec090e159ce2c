"""TraceMiddleware -- 任务级追踪

请求路径或查询参数中带有任务/用户标识时绑定 trace_id / user_id，
同一任务的 HTTP 请求日志与后续 Agent 日志可以按 trace_id 关联。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 字符串长度
_TASK_ID_LEN = 26


class TraceMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        parts = request.url.path.split("/")
        for i, part in enumerate(parts):
            if part == "tasks" and i + 1 < len(parts) and len(parts[i + 1]) == _TASK_ID_LEN:
                structlog.contextvars.bind_contextvars(trace_id=f"trace-{parts[i + 1]}")
                break

        user_id = request.query_params.get("user_id") or request.query_params.get("userId")
        if user_id:
            structlog.contextvars.bind_contextvars(user_id=user_id)

        return await call_next(request)
