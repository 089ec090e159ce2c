"""LiteLLMClient -- LiteLLM Proxy 调用封装

Agent 的每次 LLM 调用都经由 Proxy 路由到模型组（cheap / main / fallback）。
连接失败与超时映射为 ProxyUnreachableError，其余调用错误映射为可恢复的
ProviderError；两者都交给 FallbackManager 与 WorkflowRunner 处理。
"""

import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from .exceptions import ProviderError, ProxyUnreachableError
from .models import ModelCallResult, TokenUsage

log = structlog.get_logger()

HEALTH_CHECK_TIMEOUT_S = 5

# ConnectionError 与 TimeoutError 都是 OSError 的子类
_UNREACHABLE_TYPES = (OSError, httpx.TransportError)
# litellm 自带的连接类异常，按类名识别
_UNREACHABLE_NAMES = frozenset({"APIConnectionError", "APITimeoutError", "Timeout"})


def translate_error(error: Exception, proxy_url: str) -> ProviderError:
    """把 litellm / 网络异常映射为 Provider 异常"""
    if isinstance(error, _UNREACHABLE_TYPES) or type(error).__name__ in _UNREACHABLE_NAMES:
        return ProxyUnreachableError(proxy_url=proxy_url, original_error=error)
    return ProviderError(f"LLM 调用失败: {error}", recoverable=True)


def _usage_of(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    counts = {
        field: getattr(usage, field, 0) or 0
        for field in ("prompt_tokens", "completion_tokens", "total_tokens")
    }
    return TokenUsage(**counts)


class LiteLLMClient:
    """LiteLLM Proxy 客户端

    proxy_api_key 是 Proxy 的访问密钥，真实的模型厂商密钥只存在于 Proxy 侧。
    """

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        timeout_s: int = 30,
    ) -> None:
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._timeout_s = timeout_s

    @property
    def proxy_base_url(self) -> str:
        return self._proxy_base_url

    def _request(
        self,
        messages: list[dict[str, str]],
        model_alias: str,
        temperature: float,
        max_tokens: int | None,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": model_alias,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "temperature": temperature,
            "timeout": self._timeout_s,
        }
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        request.update(extra)
        return request

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "main",
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """调用 Proxy 的 chat completion

        Raises:
            ProxyUnreachableError: Proxy 连接失败或超时
            ProviderError: Proxy 返回错误（模型不可用、配额耗尽等）
        """
        request = self._request(messages, model_alias, temperature, max_tokens, kwargs)
        started = time.monotonic()
        try:
            response = await acompletion(**request)
        except ProviderError:
            raise
        except Exception as e:
            await log.aerror(
                "llm_request_failed",
                model_group=model_alias,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            raise translate_error(e, self._proxy_base_url) from e

        hidden = getattr(response, "_hidden_params", None) or {}
        result = ModelCallResult(
            content=response.choices[0].message.content or "",
            model_alias=model_alias,
            model_name=getattr(response, "model", "") or "",
            provider=hidden.get("custom_llm_provider", "") or "",
            duration_ms=int((time.monotonic() - started) * 1000),
            token_usage=_usage_of(response),
        )
        await log.ainfo(
            "llm_request_completed",
            model_group=model_alias,
            model_name=result.model_name,
            duration_ms=result.duration_ms,
            total_tokens=result.token_usage.total_tokens,
        )
        return result

    async def health_check(self) -> bool:
        """探测 Proxy 存活（GET /health/liveliness），不可达时返回 False"""
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http:
                resp = await http.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
        except httpx.HTTPError as e:
            await log.adebug("llm_proxy_probe_failed", url=url, error=str(e))
            return False
        return resp.status_code == 200
