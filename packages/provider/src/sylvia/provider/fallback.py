"""FallbackManager -- 模型组降级

每次调用都先尝试请求的模型组（lazy probe，不记忆"已降级"状态），
失败后用 fallback 客户端调用 fallback 模型组。请求本身就是 fallback 组时不再降级。
"""

import structlog

from .exceptions import ModelGroupsExhaustedError, ProviderError
from .models import ModelCallResult

log = structlog.get_logger()


class FallbackManager:
    """降级管理器

    Args:
        primary: 主 LLM 客户端（LiteLLMClient 或 EchoMessageAdapter）
        fallback: 降级客户端，None 表示不降级（primary 的异常原样抛出）
        fallback_alias: 降级时使用的模型组
    """

    def __init__(
        self,
        primary,
        fallback=None,
        fallback_alias: str = "fallback",
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._fallback_alias = fallback_alias

    @property
    def primary(self):
        return self._primary

    def _can_fall_back(self, model_alias: str) -> bool:
        return self._fallback is not None and model_alias != self._fallback_alias

    async def call_with_fallback(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "main",
        **kwargs,
    ) -> ModelCallResult:
        """带降级的 LLM 调用

        Returns:
            降级成功时 is_fallback=True，fallback_reason 记录主模型组的错误

        Raises:
            ProviderError: 主模型组失败且不可降级
            ModelGroupsExhaustedError: 主模型组与降级模型组都失败
        """
        try:
            return await self._primary.complete(
                messages=messages,
                model_alias=model_alias,
                **kwargs,
            )
        except ProviderError as e:
            if not self._can_fall_back(model_alias):
                raise
            primary_error = e

        await log.awarning(
            "model_group_failed_trying_fallback",
            model_group=model_alias,
            error=str(primary_error),
        )
        try:
            result = await self._fallback.complete(
                messages=messages,
                model_alias=self._fallback_alias,
                **kwargs,
            )
        except ProviderError as fallback_error:
            exhausted = ModelGroupsExhaustedError(primary_error, fallback_error)
            await log.aerror(
                "model_groups_exhausted",
                model_group=model_alias,
                recoverable=exhausted.recoverable,
            )
            raise exhausted from fallback_error

        await log.ainfo("fallback_activated", model_group=model_alias)
        return result.model_copy(
            update={
                "is_fallback": True,
                "fallback_reason": f"Primary 失败: {primary_error}",
            }
        )
