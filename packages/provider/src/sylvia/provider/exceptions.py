"""Provider 异常体系

ProviderError 是外部 LLM 调用的瞬时失败，由 WorkflowRunner 决定是否重试，
网关映射为 502；它永远不会被转换成成功结果。
"""


class ProviderError(Exception):
    """LLM 调用失败

    recoverable=True 表示同一请求稍后重试或切换模型组有望成功。
    """

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class ProxyUnreachableError(ProviderError):
    """LiteLLM Proxy 不可达（连接失败、超时、DNS 解析失败），总是可恢复"""

    def __init__(self, proxy_url: str, original_error: Exception) -> None:
        super().__init__(f"LiteLLM Proxy 不可达: {proxy_url} -- {original_error}")
        self.proxy_url = proxy_url
        self.original_error = original_error


class ModelGroupsExhaustedError(ProviderError):
    """主模型组与降级模型组都失败

    只有两次失败都可恢复时才整体可恢复。
    """

    def __init__(self, primary_error: ProviderError, fallback_error: ProviderError) -> None:
        super().__init__(
            f"Primary 和 Fallback 均失败。Primary: {primary_error}; Fallback: {fallback_error}",
            recoverable=primary_error.recoverable and fallback_error.recoverable,
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error
