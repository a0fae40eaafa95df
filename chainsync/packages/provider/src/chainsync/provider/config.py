"""RpcConfig -- RPC 访问配置加载

从环境变量加载配置，链地址本身来自 Chain Registry。
"""

import os

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


class RpcConfig(BaseModel):
    """Provider 包配置 -- 从环境变量加载

    环境变量:
        CHAINSYNC_RPC_TIMEOUT_S: HTTP RPC 请求超时（秒，默认 30）
        CHAINSYNC_POLL_INTERVAL_S: 区块轮询间隔覆盖值（秒，默认按链出块时间）
    """

    timeout_s: int = Field(
        default=30,
        ge=1,
        description="RPC 请求超时（秒）",
    )
    poll_interval_s: float | None = Field(
        default=None,
        gt=0,
        description="区块轮询间隔，None 表示使用链的平均出块时间",
    )


def load_rpc_config() -> RpcConfig:
    """从环境变量加载 RPC 配置

    环境变量映射:
        CHAINSYNC_RPC_TIMEOUT_S -> timeout_s (默认 30)
        CHAINSYNC_POLL_INTERVAL_S -> poll_interval_s (默认 None)

    无法解析或不满足取值范围的值记录 warning 并使用默认值。

    Returns:
        RpcConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CHAINSYNC_RPC_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = RpcConfig(timeout_s=int(val)).timeout_s
        except (ValueError, ValidationError):
            log.warning(
                "invalid_timeout_config",
                env_var="CHAINSYNC_RPC_TIMEOUT_S",
                value=val,
                fallback=30,
            )

    if val := os.environ.get("CHAINSYNC_POLL_INTERVAL_S"):
        try:
            kwargs["poll_interval_s"] = RpcConfig(poll_interval_s=float(val)).poll_interval_s
        except (ValueError, ValidationError):
            log.warning(
                "invalid_poll_interval_config",
                env_var="CHAINSYNC_POLL_INTERVAL_S",
                value=val,
                fallback=None,
            )

    return RpcConfig(**kwargs)
