"""FallbackManager 单元测试

验证 primary 成功不触发 fallback、primary 失败切换到 fallback 运行时 group、
双方失败抛 ProviderError、非 ProviderError 异常原样传播、lazy probe 恢复。
"""

import pytest
from sylvia.provider.exceptions import (
    ModelGroupsExhaustedError,
    ProviderError,
    ProxyUnreachableError,
)
from sylvia.provider.fallback import FallbackManager
from sylvia.provider.models import ModelCallResult


def make_result(content: str) -> ModelCallResult:
    return ModelCallResult(content=content, model_alias="main", duration_ms=5)


def _unreachable() -> ProxyUnreachableError:
    return ProxyUnreachableError("http://localhost:4000", ConnectionError("refused"))


class TestFallbackManagerPrimarySuccess:
    async def test_primary_success_no_fallback(self, mock_primary, mock_fallback, sample_messages):
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        result = await fm.call_with_fallback(sample_messages, model_alias="main")

        assert result.content == "primary response"
        assert result.is_fallback is False
        mock_fallback.complete.assert_not_called()


class TestFallbackManagerPrimaryFailure:
    async def test_provider_error_switches_to_fallback_group(
        self, mock_primary, mock_fallback, sample_messages
    ):
        """primary 失败后以 fallback 运行时 group 重试"""
        mock_primary.complete.side_effect = _unreachable()
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        result = await fm.call_with_fallback(sample_messages, model_alias="main", temperature=0.3)

        assert result.is_fallback is True
        assert "Primary 失败" in result.fallback_reason
        kwargs = mock_fallback.complete.call_args.kwargs
        assert kwargs["model_alias"] == "fallback"
        assert kwargs["temperature"] == 0.3

    async def test_non_provider_error_propagates(self, mock_primary, mock_fallback, sample_messages):
        """编程错误不触发降级"""
        mock_primary.complete.side_effect = RuntimeError("bug")
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        with pytest.raises(RuntimeError):
            await fm.call_with_fallback(sample_messages)
        mock_fallback.complete.assert_not_called()

    async def test_fallback_group_request_not_retried(
        self, mock_primary, mock_fallback, sample_messages
    ):
        """请求本身就是 fallback group 时不再降级"""
        mock_primary.complete.side_effect = _unreachable()
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        with pytest.raises(ProxyUnreachableError):
            await fm.call_with_fallback(sample_messages, model_alias="fallback")
        mock_fallback.complete.assert_not_called()


class TestFallbackManagerBothFail:
    async def test_both_fail_raises_provider_error(
        self, mock_primary, mock_fallback, sample_messages
    ):
        mock_primary.complete.side_effect = _unreachable()
        mock_fallback.complete.side_effect = ProviderError("fallback down", recoverable=False)
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        with pytest.raises(ModelGroupsExhaustedError) as exc_info:
            await fm.call_with_fallback(sample_messages)
        assert "Primary" in str(exc_info.value)
        assert exc_info.value.recoverable is False
        assert isinstance(exc_info.value.primary_error, ProxyUnreachableError)

    async def test_both_recoverable_stays_recoverable(
        self, mock_primary, mock_fallback, sample_messages
    ):
        mock_primary.complete.side_effect = _unreachable()
        mock_fallback.complete.side_effect = ProviderError("rate limited")
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        with pytest.raises(ProviderError) as exc_info:
            await fm.call_with_fallback(sample_messages)
        assert exc_info.value.recoverable is True

    async def test_no_fallback_configured(self, mock_primary, sample_messages):
        mock_primary.complete.side_effect = _unreachable()
        fm = FallbackManager(primary=mock_primary, fallback=None)

        with pytest.raises(ProxyUnreachableError):
            await fm.call_with_fallback(sample_messages)


class TestFallbackManagerLazyProbe:
    async def test_recovery_after_failure(self, mock_primary, mock_fallback, sample_messages):
        """不保留降级状态：primary 恢复后下一次调用直接使用 primary"""
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        mock_primary.complete.side_effect = _unreachable()
        first = await fm.call_with_fallback(sample_messages)
        assert first.is_fallback is True

        mock_primary.complete.side_effect = None
        mock_primary.complete.return_value = make_result("recovered")
        second = await fm.call_with_fallback(sample_messages)
        assert second.is_fallback is False
        assert second.content == "recovered"
