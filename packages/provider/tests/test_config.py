"""ProviderConfig + load_provider_config 单元测试"""

import pytest
from pydantic import SecretStr, ValidationError
from sylvia.provider.config import ProviderConfig, load_provider_config

_ENV_VARS = (
    "LITELLM_PROXY_URL",
    "LITELLM_PROXY_KEY",
    "SYLVIA_LLM_MODE",
    "SYLVIA_LLM_TIMEOUT_S",
    "SYLVIA_LLM_FALLBACK",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestProviderConfig:
    def test_default_values(self):
        config = ProviderConfig()
        assert config.proxy_base_url == "http://localhost:4000"
        assert config.proxy_api_key.get_secret_value() == ""
        assert config.llm_mode == "litellm"
        assert config.timeout_s == 30
        assert config.fallback_enabled is True

    def test_timeout_min_value(self):
        with pytest.raises(ValidationError):
            ProviderConfig(timeout_s=0)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            ProviderConfig(llm_mode="openai")

    def test_secret_not_in_repr(self):
        config = ProviderConfig(proxy_api_key=SecretStr("sk-secret"))
        assert "sk-secret" not in repr(config)


class TestLoadProviderConfig:
    def test_default_when_no_env(self, clean_env):
        config = load_provider_config()
        assert config == ProviderConfig()

    def test_env_mapping(self, clean_env):
        clean_env.setenv("LITELLM_PROXY_URL", "http://proxy:8080")
        clean_env.setenv("LITELLM_PROXY_KEY", "sk-proxy")
        clean_env.setenv("SYLVIA_LLM_MODE", "echo")
        clean_env.setenv("SYLVIA_LLM_TIMEOUT_S", "60")
        clean_env.setenv("SYLVIA_LLM_FALLBACK", "off")

        config = load_provider_config()
        assert config.proxy_base_url == "http://proxy:8080"
        assert config.proxy_api_key.get_secret_value() == "sk-proxy"
        assert config.llm_mode == "echo"
        assert config.timeout_s == 60
        assert config.fallback_enabled is False

    def test_invalid_timeout_uses_default(self, clean_env):
        """非法超时值不阻塞启动"""
        clean_env.setenv("SYLVIA_LLM_TIMEOUT_S", "abc")
        assert load_provider_config().timeout_s == 30
