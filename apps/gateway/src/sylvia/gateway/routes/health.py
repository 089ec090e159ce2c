"""健康检查路由

GET /health  Liveness，永远 200
GET /ready   Readiness：SQLite 连通性、WAL 模式、磁盘空间；
             profile=llm/full 时额外探测 LiteLLM Proxy。
             编排器运行状态只作展示，不影响就绪结论。
"""

import shutil

import aiosqlite
import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse
from sylvia.core.store import verify_wal_mode

log = structlog.get_logger()

router = APIRouter()

# 低于该值视为磁盘不足
MIN_FREE_DISK_MB = 100


async def _check_sqlite(conn: aiosqlite.Connection) -> dict[str, str]:
    try:
        cursor = await conn.execute("SELECT 1")
        await cursor.fetchone()
    except (aiosqlite.Error, ValueError) as e:
        return {"sqlite": f"error: {e}"}
    return {
        "sqlite": "ok",
        "wal_mode": "ok" if await verify_wal_mode(conn) else "skipped",
    }


def _free_disk_mb() -> int:
    try:
        return shutil.disk_usage("/").free // (1024 * 1024)
    except OSError:
        return 0


async def _check_proxy(request: Request) -> str:
    client = getattr(request.app.state, "litellm_client", None)
    if client is None:
        # echo 模式没有可探测的 Proxy
        return "skipped"
    if await client.health_check():
        return "ok"
    await log.awarning("litellm_proxy_unreachable")
    return "unreachable"


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="core（默认）仅核心检查；llm/full 包含 LiteLLM Proxy 探测",
    ),
):
    effective_profile = profile or "core"
    state = request.app.state

    checks: dict[str, str | int] = {}
    checks.update(await _check_sqlite(state.store_group.conn))
    checks["disk_space_mb"] = _free_disk_mb()
    checks["litellm_proxy"] = (
        await _check_proxy(request) if effective_profile in ("llm", "full") else "skipped"
    )

    all_ok = (
        checks["sqlite"] == "ok"
        and checks["disk_space_mb"] >= MIN_FREE_DISK_MB
        and checks["litellm_proxy"] != "unreachable"
    )
    orchestrator = getattr(state, "orchestrator", None)
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "profile": effective_profile,
            "checks": checks,
            "orchestrator": "running" if orchestrator and orchestrator.is_running else "stopped",
        },
    )
