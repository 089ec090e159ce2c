"""数据模型 -- TokenUsage + ModelCallResult"""

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token 使用统计（命名对齐 OpenAI/LiteLLM）"""

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")


class ModelCallResult(BaseModel):
    """LLM 调用结果

    所有 provider（LiteLLM、Echo、测试 Mock）统一返回此类型。
    """

    content: str = Field(description="LLM 响应文本内容")
    model_alias: str = Field(description="请求时使用的运行时 group")
    model_name: str = Field(default="", description="实际调用的模型名称")
    provider: str = Field(default="", description="实际 provider")
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")
    token_usage: TokenUsage = Field(default_factory=TokenUsage)

    # 降级信息
    is_fallback: bool = Field(default=False, description="是否由降级模型组返回")
    fallback_reason: str = Field(default="", description="降级原因说明")
