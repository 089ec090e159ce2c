"""Sylvia Provider -- LLM 调用抽象层

packages/provider 的公开接口导出。
"""

from .alias import AliasRegistry, AliasRoute
from .client import LiteLLMClient
from .config import ProviderConfig, load_provider_config
from .echo_adapter import EchoMessageAdapter
from .exceptions import ModelGroupsExhaustedError, ProviderError, ProxyUnreachableError
from .fallback import FallbackManager
from .models import ModelCallResult, TokenUsage
from .service import LLMService, build_llm_service
from .structured import (
    StructuredFailure,
    StructuredGenerator,
    StructuredOk,
    decode_structured,
)

__all__ = [
    "ModelCallResult",
    "TokenUsage",
    "LiteLLMClient",
    "AliasRoute",
    "AliasRegistry",
    "FallbackManager",
    "EchoMessageAdapter",
    "LLMService",
    "build_llm_service",
    "ProviderConfig",
    "load_provider_config",
    "ProviderError",
    "ProxyUnreachableError",
    "ModelGroupsExhaustedError",
    "StructuredOk",
    "StructuredFailure",
    "StructuredGenerator",
    "decode_structured",
]
