"""Agent 模型路由表

Agent 只使用语义 alias（planner / assessor / analyst）。路由表把 alias
映射到 Proxy 侧的模型组（cheap / main / fallback），并携带该 Agent 的
默认采样参数；调用方显式传入的 temperature / max_tokens 优先。
"""

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

RUNTIME_GROUPS = frozenset({"cheap", "main", "fallback"})
DEFAULT_GROUP = "main"


class AliasRoute(BaseModel):
    """单个 alias 的路由"""

    alias: str
    group: str = Field(default=DEFAULT_GROUP, description="Proxy 侧 model_name")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    purpose: str = ""

    def sampling(self) -> dict[str, float | int]:
        params: dict[str, float | int] = {}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens
        return params


DEFAULT_ROUTES: tuple[AliasRoute, ...] = (
    AliasRoute(
        alias="planner",
        temperature=0.3,
        max_tokens=2048,
        purpose="复杂度判断与子任务拆分",
    ),
    AliasRoute(
        alias="assessor",
        temperature=0.4,
        max_tokens=1024,
        purpose="完成任务的四维评估",
    ),
    AliasRoute(
        alias="analyst",
        group="cheap",
        temperature=0.3,
        max_tokens=1024,
        purpose="生产力洞察",
    ),
)


class AliasRegistry:
    """alias -> AliasRoute，启动时确定"""

    def __init__(self, routes: list[AliasRoute] | None = None) -> None:
        self._routes = {r.alias: r for r in (routes if routes is not None else DEFAULT_ROUTES)}

    def route(self, alias: str | None) -> AliasRoute:
        """查找路由

        未注册的模型组名按同名组直接使用（无默认采样参数），
        其他未知 alias 记录 warning 后落到 main 组。
        """
        name = alias or DEFAULT_GROUP
        if name in self._routes:
            return self._routes[name]
        if name not in RUNTIME_GROUPS:
            log.warning("unknown_alias_fallback_to_main", alias=name)
            name = DEFAULT_GROUP
        return AliasRoute(alias=name, group=name)

    def resolve(self, alias: str | None) -> str:
        return self.route(alias).group

    def aliases(self) -> list[str]:
        return sorted(self._routes)
