"""LLMService -- Agent 侧的统一 LLM 调用入口

语义 alias 经 AliasRegistry 路由到模型组并补齐默认采样参数，再通过 FallbackManager 调用。
"""

from .alias import AliasRegistry
from .client import LiteLLMClient
from .config import ProviderConfig
from .echo_adapter import EchoMessageAdapter
from .fallback import FallbackManager
from .models import ModelCallResult


class LLMService:
    def __init__(
        self,
        fallback_manager: FallbackManager,
        alias_registry: AliasRegistry | None = None,
    ) -> None:
        self._fallback_manager = fallback_manager
        self._alias_registry = alias_registry or AliasRegistry()

    @property
    def primary(self):
        return self._fallback_manager.primary

    async def call(
        self,
        prompt_or_messages: str | list[dict[str, str]],
        model_alias: str | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """调用 LLM

        Args:
            prompt_or_messages: 纯文本 prompt（自动转为单条 user 消息）或 messages 列表
            model_alias: 语义 alias 或运行时 group，None 时使用 "main"
            **kwargs: temperature / max_tokens 等透传给客户端，覆盖路由默认值
        """
        if isinstance(prompt_or_messages, str):
            messages = [{"role": "user", "content": prompt_or_messages}]
        else:
            messages = prompt_or_messages

        route = self._alias_registry.route(model_alias)
        return await self._fallback_manager.call_with_fallback(
            messages=messages,
            model_alias=route.group,
            **{**route.sampling(), **kwargs},
        )


def build_llm_service(config: ProviderConfig) -> LLMService:
    """按配置构建 LLMService

    echo 模式下不访问外部服务；litellm 模式下按配置决定是否启用 fallback 模型组。
    """
    if config.llm_mode == "echo":
        return LLMService(FallbackManager(primary=EchoMessageAdapter()))

    client = LiteLLMClient(
        proxy_base_url=config.proxy_base_url,
        proxy_api_key=config.proxy_api_key.get_secret_value(),
        timeout_s=config.timeout_s,
    )
    return LLMService(
        FallbackManager(
            primary=client,
            fallback=client if config.fallback_enabled else None,
        )
    )
