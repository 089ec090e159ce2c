"""EchoMessageAdapter -- 离线模式的 LLM 替身

SYLVIA_LLM_MODE=echo 时作为主客户端使用，不访问任何外部服务。
回声文本不含 JSON 对象，因此各 Agent 会走各自的结构化解析失败分支
（Planner 不拆分、Assessor 返回失败、Analyzer 无洞察），行为完全确定。
"""

import time

from .models import ModelCallResult, TokenUsage

ECHO_PREFIX = "Echo: "


def _last_user_text(messages: list[dict[str, str]]) -> str:
    user_turns = [m.get("content", "") for m in messages if m.get("role") == "user"]
    if user_turns:
        return user_turns[-1]
    return messages[-1].get("content", "(empty)") if messages else "(empty)"


class EchoMessageAdapter:
    """把最后一条 user 消息原样回显，token 数按空白分词计"""

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "echo",
        **kwargs,
    ) -> ModelCallResult:
        started = time.monotonic()
        prompt = _last_user_text(messages)
        reply = ECHO_PREFIX + prompt
        prompt_tokens, completion_tokens = len(prompt.split()), len(reply.split())
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        return ModelCallResult(
            content=reply,
            model_alias=model_alias,
            model_name="echo",
            provider="echo",
            duration_ms=int((time.monotonic() - started) * 1000),
            token_usage=usage,
        )

    async def health_check(self) -> bool:
        return True
