"""LiteLLMClient 单元测试

Mock litellm.acompletion()，验证 complete() 返回 ModelCallResult、
连接类错误包装为 ProxyUnreachableError、其余错误包装为可恢复的 ProviderError、
health_check() 返回 bool。
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from sylvia.provider.client import LiteLLMClient, translate_error
from sylvia.provider.exceptions import ProviderError, ProxyUnreachableError
from sylvia.provider.models import ModelCallResult


@pytest.fixture
def client():
    return LiteLLMClient(
        proxy_base_url="http://localhost:4000/",
        proxy_api_key="sk-test",
        timeout_s=30,
    )


def _make_mock_litellm_response(
    content: str | None = '{"needs_subtasks": false}',
    model: str = "gpt-4o-mini",
    prompt_tokens: int = 10,
    completion_tokens: int = 20,
    total_tokens: int = 30,
):
    """构造 Mock LiteLLM acompletion 返回"""
    response = MagicMock()
    response.model = model

    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]

    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    usage.total_tokens = total_tokens
    response.usage = usage

    response._hidden_params = {"custom_llm_provider": "openai"}
    return response


class TestLiteLLMClientComplete:
    """complete() 方法测试"""

    @patch("sylvia.provider.client.acompletion")
    async def test_successful_call(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response()

        result = await client.complete(
            messages=[{"role": "user", "content": "拆分任务"}],
            model_alias="main",
        )

        assert isinstance(result, ModelCallResult)
        assert result.content == '{"needs_subtasks": false}'
        assert result.model_alias == "main"
        assert result.model_name == "gpt-4o-mini"
        assert result.provider == "openai"
        assert result.duration_ms >= 0
        assert result.is_fallback is False

    @patch("sylvia.provider.client.acompletion")
    async def test_call_kwargs_forwarded(self, mock_acompletion, client):
        """运行时 group、Proxy 地址、温度与 max_tokens 透传给 litellm"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(
            messages=[{"role": "user", "content": "test"}],
            model_alias="cheap",
            temperature=0.4,
            max_tokens=1024,
        )

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "cheap"
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["temperature"] == 0.4
        assert kwargs["max_tokens"] == 1024
        assert kwargs["timeout"] == 30

    @patch("sylvia.provider.client.acompletion")
    async def test_max_tokens_omitted_when_none(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(messages=[{"role": "user", "content": "test"}])

        assert "max_tokens" not in mock_acompletion.call_args.kwargs

    @patch("sylvia.provider.client.acompletion")
    async def test_empty_content_becomes_empty_string(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response(content=None)

        result = await client.complete(messages=[{"role": "user", "content": "test"}])
        assert result.content == ""

    @patch("sylvia.provider.client.acompletion")
    async def test_connection_error_raises_proxy_unreachable(self, mock_acompletion, client):
        mock_acompletion.side_effect = ConnectionError("Connection refused")

        with pytest.raises(ProxyUnreachableError) as exc_info:
            await client.complete(messages=[{"role": "user", "content": "test"}])
        assert "localhost:4000" in str(exc_info.value)
        assert exc_info.value.recoverable is True

    @patch("sylvia.provider.client.acompletion")
    async def test_timeout_raises_proxy_unreachable(self, mock_acompletion, client):
        mock_acompletion.side_effect = TimeoutError("timeout")

        with pytest.raises(ProxyUnreachableError):
            await client.complete(messages=[{"role": "user", "content": "test"}])

    @patch("sylvia.provider.client.acompletion")
    async def test_other_error_wrapped_as_recoverable(self, mock_acompletion, client):
        """非连接类错误包装为可恢复的 ProviderError"""
        mock_acompletion.side_effect = ValueError("quota exceeded")

        with pytest.raises(ProviderError) as exc_info:
            await client.complete(messages=[{"role": "user", "content": "test"}])
        assert not isinstance(exc_info.value, ProxyUnreachableError)
        assert exc_info.value.recoverable is True
        assert "quota exceeded" in str(exc_info.value)

    @patch("sylvia.provider.client.acompletion")
    async def test_token_usage_parsed(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response(
            prompt_tokens=50, completion_tokens=100, total_tokens=150
        )

        result = await client.complete(messages=[{"role": "user", "content": "test"}])

        assert result.token_usage.prompt_tokens == 50
        assert result.token_usage.completion_tokens == 100
        assert result.token_usage.total_tokens == 150


class TestLiteLLMClientHealthCheck:
    """health_check() 方法测试"""

    @patch("httpx.AsyncClient.get")
    async def test_healthy_proxy(self, mock_get, client):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_get.return_value = mock_response

        assert await client.health_check() is True

    @patch("httpx.AsyncClient.get")
    async def test_unreachable_proxy(self, mock_get, client):
        mock_get.side_effect = httpx.ConnectError("Connection refused")

        assert await client.health_check() is False

    @patch("httpx.AsyncClient.get")
    async def test_server_error(self, mock_get, client):
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_get.return_value = mock_response

        assert await client.health_check() is False


class TestTranslateError:
    def test_httpx_transport_error_is_unreachable(self):
        err = translate_error(httpx.ReadTimeout("read timed out"), "http://proxy:4000")

        assert isinstance(err, ProxyUnreachableError)
        assert err.proxy_url == "http://proxy:4000"

    def test_litellm_connection_error_matched_by_name(self):
        class APIConnectionError(Exception):
            pass

        err = translate_error(APIConnectionError("refused"), "http://proxy:4000")

        assert isinstance(err, ProxyUnreachableError)

    def test_provider_error_message_keeps_cause(self):
        err = translate_error(RuntimeError("model not found"), "http://proxy:4000")

        assert type(err) is ProviderError
        assert "model not found" in str(err)
