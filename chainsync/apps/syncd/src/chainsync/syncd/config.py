"""SyncEngineConfig -- 同步引擎配置加载

从环境变量加载重连、回放、漂移修正参数，
非法值记录 warning 并使用默认值，不阻塞启动。
"""

import os

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


class SyncEngineConfig(BaseModel):
    """同步引擎配置

    环境变量:
        MAX_RECONNECT_ATTEMPTS: 单条链的重连次数上限（默认 5）
        RECONNECT_BASE_DELAY_S: 退避基数（秒，默认 5）
        SYNC_CHECK_INTERVAL_S: 漂移修正间隔（秒，默认 30，0 表示关闭）
        CHAINSYNC_BACKFILL_CHUNK_BLOCKS: 单次日志查询的区块数（默认 2000）
        CHAINSYNC_BACKFILL_TIMEOUT_S: 单个分段查询超时（秒，默认 30）
        CHAINSYNC_DRIFT_FULL_RECONCILE: 是否修正 description / deleted（默认 true）
        CHAINSYNC_MAX_SYNC_FAILURES: 连续读取失败多少次后标记 error（默认 3）
    """

    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_base_delay_s: float = Field(default=5.0, ge=0)
    sync_check_interval_s: float = Field(
        default=30.0,
        ge=0,
        description="漂移修正间隔，0 表示关闭",
    )
    backfill_chunk_blocks: int = Field(default=2000, ge=1)
    backfill_timeout_s: float = Field(default=30.0, gt=0)
    drift_full_reconcile: bool = Field(default=True)
    max_sync_failures: int = Field(default=3, ge=1)

    def reconnect_delay(self, attempt: int) -> float:
        """第 attempt 次重连前的等待时间：base * 2^(attempt-1)"""
        return self.reconnect_base_delay_s * (2 ** max(attempt - 1, 0))


# 环境变量 -> (字段, 类型)
_ENV_FIELDS: dict[str, tuple[str, type]] = {
    "MAX_RECONNECT_ATTEMPTS": ("max_reconnect_attempts", int),
    "RECONNECT_BASE_DELAY_S": ("reconnect_base_delay_s", float),
    "SYNC_CHECK_INTERVAL_S": ("sync_check_interval_s", float),
    "CHAINSYNC_BACKFILL_CHUNK_BLOCKS": ("backfill_chunk_blocks", int),
    "CHAINSYNC_BACKFILL_TIMEOUT_S": ("backfill_timeout_s", float),
    "CHAINSYNC_MAX_SYNC_FAILURES": ("max_sync_failures", int),
}


def load_engine_config() -> SyncEngineConfig:
    """从环境变量加载同步引擎配置

    无法解析或超出取值范围（如负数的重连次数）的变量逐个退回默认值。

    Returns:
        SyncEngineConfig 实例
    """
    kwargs: dict = {}
    defaults = SyncEngineConfig()

    for env_var, (field, cast) in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            # 单字段校验，让 ge / gt 约束在这里就生效
            kwargs[field] = getattr(SyncEngineConfig(**{field: cast(val)}), field)
        except (ValueError, ValidationError):
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field),
            )

    if val := os.environ.get("CHAINSYNC_DRIFT_FULL_RECONCILE"):
        kwargs["drift_full_reconcile"] = val.lower() not in ("false", "0", "no")

    return SyncEngineConfig(**kwargs)
