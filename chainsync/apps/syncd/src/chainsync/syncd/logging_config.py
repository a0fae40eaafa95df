"""syncd 日志配置

标准库 logging 只保留一个根 handler，structlog 事件和第三方库
（web3、aiohttp、aiosqlite）的日志都经由 ProcessorFormatter 统一渲染。
"""

import logging
import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, ValidationError

# 第三方库默认输出过于冗长，统一压到 WARNING
_NOISY_LOGGERS = ("web3", "aiohttp.access", "aiosqlite", "httpx")


class LoggingConfig(BaseModel):
    """日志配置

    环境变量:
        CHAINSYNC_LOG_FORMAT: dev（可读彩色输出，默认）或 json（每行一个 JSON 对象）
        CHAINSYNC_LOG_LEVEL: 根 logger 级别（默认 INFO）
        LOGFIRE_SEND_TO_LOGFIRE: true 时把 trace 发送到 Logfire（默认 false）
    """

    format: Literal["dev", "json"] = "dev"
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    send_to_logfire: bool = False
    quiet_loggers: tuple[str, ...] = Field(default=_NOISY_LOGGERS)


def load_logging_config() -> LoggingConfig:
    """从环境变量读取日志配置，取值不合法时整体退回默认值"""
    try:
        return LoggingConfig(
            format=os.environ.get("CHAINSYNC_LOG_FORMAT", "dev").lower(),
            level=os.environ.get("CHAINSYNC_LOG_LEVEL", "INFO").upper(),
            send_to_logfire=os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() == "true",
        )
    except ValidationError as e:
        # 此时日志尚未配置，只能走 structlog 默认输出
        structlog.get_logger().warning("invalid_logging_config", error=str(e))
        return LoggingConfig()


def _pre_chain() -> list[structlog.types.Processor]:
    """structlog 事件与标准库记录共用的前置处理器"""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(config: LoggingConfig) -> structlog.types.Processor:
    if config.format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: LoggingConfig | None = None) -> LoggingConfig:
    """安装根 handler 并配置 structlog，返回实际生效的配置"""
    config = config or load_logging_config()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(config),
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(config.level)
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return config


def setup_logfire(config: LoggingConfig | None = None) -> bool:
    """按配置启用 Logfire，并追踪 RPC 使用的 aiohttp / httpx 请求

    Returns:
        Logfire 是否已启用；初始化失败时降级为纯本地日志并返回 False
    """
    config = config or load_logging_config()
    if not config.send_to_logfire:
        return False

    try:
        import logfire

        logfire.configure(service_name="chainsync-syncd")
        logfire.instrument_aiohttp_client()
        logfire.instrument_httpx()
    except Exception as e:
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
        return False
    return True
