"""日志与 APM 配置

structlog 与标准库 logging 共用一套处理器链：
- SYLVIA_LOG_FORMAT=json 输出单行 JSON（生产），默认 dev 为彩色控制台输出
- SYLVIA_LOG_LEVEL 控制根 logger 级别（默认 INFO）
- LOGFIRE_SEND_TO_LOGFIRE=true 时额外接入 Logfire
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 这些第三方 logger 在 INFO 级别逐请求输出，统一压到 WARNING
_NOISY_LOGGERS = ("LiteLLM", "LiteLLM Proxy", "LiteLLM Router", "httpx", "aiosqlite")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    log_format = os.environ.get("SYLVIA_LOG_FORMAT", "dev").lower()
    level = getattr(logging, os.environ.get("SYLVIA_LOG_LEVEL", "INFO").upper(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=shared,
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logfire(app: FastAPI) -> bool:
    """按需接入 Logfire，返回是否启用

    需要 LOGFIRE_TOKEN；初始化失败只记录警告，服务继续使用本地日志。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return False

    import logfire

    try:
        logfire.configure()
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
        return False
    return True
