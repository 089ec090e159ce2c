"""结构化输出解码

LLM 以自由文本返回 JSON；这里从文本中截取最外层 {...} 对象并用 pydantic 校验。
解码失败不是异常：返回 StructuredFailure，由各调用方选择恢复策略。
传输层错误（ProviderError）不在此处处理，原样向上传播。
"""

import json
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from .service import LLMService

log = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class StructuredOk(Generic[T]):
    value: T


@dataclass(frozen=True)
class StructuredFailure:
    reason: str
    raw: str = ""


def extract_json_object(text: str) -> str | None:
    """截取第一个 "{" 到最后一个 "}" 之间的文本（含两端）"""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def decode_structured(text: str, schema: type[T]) -> StructuredOk[T] | StructuredFailure:
    """从自由文本解码出 schema 实例"""
    candidate = extract_json_object(text)
    if candidate is None:
        return StructuredFailure(reason="no_json_object", raw=text)
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        return StructuredFailure(reason=f"invalid_json: {e.msg}", raw=text)
    try:
        return StructuredOk(schema.model_validate(payload))
    except ValidationError as e:
        return StructuredFailure(
            reason=f"schema_mismatch: {e.error_count()} errors",
            raw=text,
        )


class StructuredGenerator:
    """prompt -> LLM -> 结构化结果"""

    def __init__(self, llm_service: LLMService) -> None:
        self._llm = llm_service

    async def generate(
        self,
        prompt: str,
        schema: type[T],
        model_alias: str = "main",
        temperature: float = 0.3,
        max_tokens: int | None = 1024,
    ) -> StructuredOk[T] | StructuredFailure:
        """
        Raises:
            ProviderError: LLM 调用失败（不会被转换为 StructuredFailure）
        """
        result = await self._llm.call(
            prompt,
            model_alias=model_alias,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        decoded = decode_structured(result.content, schema)
        if isinstance(decoded, StructuredFailure):
            await log.awarning(
                "structured_decode_failed",
                schema=schema.__name__,
                reason=decoded.reason,
                model_alias=model_alias,
                is_fallback=result.is_fallback,
            )
        return decoded
