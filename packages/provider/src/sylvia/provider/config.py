"""ProviderConfig -- LLM 接入配置

全部来自环境变量；模型名与厂商密钥只存在于 LiteLLM Proxy 侧。
"""

import os
from collections.abc import Callable
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

_FALSY = frozenset({"0", "false", "no", "off"})


class ProviderConfig(BaseModel):
    """Provider 配置

    环境变量:
        LITELLM_PROXY_URL: Proxy 地址（默认 http://localhost:4000）
        LITELLM_PROXY_KEY: Proxy 访问密钥
        SYLVIA_LLM_MODE: litellm / echo
        SYLVIA_LLM_TIMEOUT_S: 单次调用超时秒数（默认 30）
        SYLVIA_LLM_FALLBACK: 主模型组失败时是否切换到 fallback 组（默认开启）
    """

    proxy_base_url: str = "http://localhost:4000"
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥（不是模型厂商密钥）",
    )
    llm_mode: Literal["litellm", "echo"] = "litellm"
    timeout_s: int = Field(default=30, ge=1)
    fallback_enabled: bool = True


# 环境变量 -> (字段名, 解析函数)
_ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "LITELLM_PROXY_URL": ("proxy_base_url", str),
    "LITELLM_PROXY_KEY": ("proxy_api_key", SecretStr),
    "SYLVIA_LLM_MODE": ("llm_mode", str),
    "SYLVIA_LLM_TIMEOUT_S": ("timeout_s", int),
    "SYLVIA_LLM_FALLBACK": ("fallback_enabled", lambda v: v.lower() not in _FALSY),
}


def load_provider_config() -> ProviderConfig:
    """从环境变量加载 Provider 配置

    无法解析的数值不阻塞启动：记录 warning 后使用字段默认值。
    """
    values: dict[str, Any] = {}
    for env_var, (field, parse) in _ENV_FIELDS.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            values[field] = parse(raw)
        except ValueError:
            log.warning(
                "invalid_provider_config",
                env_var=env_var,
                value=raw,
                default=ProviderConfig.model_fields[field].default,
            )
    return ProviderConfig(**values)
