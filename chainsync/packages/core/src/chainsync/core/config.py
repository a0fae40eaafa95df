"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、合约部署文件目录、ABI 路径、
各链默认确认块数与出块时间等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CHAINSYNC_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 缓存数据库路径"""
    return os.environ.get(
        "CHAINSYNC_DB_PATH",
        str(_get_base_dir() / "sqlite" / "chainsync.db"),
    )


def get_deployments_dir() -> Path:
    """获取合约部署文件目录（deployment-<chainId>.json）"""
    return Path(
        os.environ.get(
            "CHAINSYNC_DEPLOYMENTS_DIR",
            str(_get_base_dir() / "deployments"),
        )
    )


def get_abi_path() -> Path:
    """获取合约 ABI 文件路径（编译产物或裸 ABI 列表）"""
    return Path(
        os.environ.get(
            "CHAINSYNC_ABI_PATH",
            str(_get_base_dir() / "abi" / "TodoListV2.json"),
        )
    )


def get_default_network() -> str:
    """获取默认网络 key"""
    return os.environ.get("DEFAULT_NETWORK", "localhost")


# 未知链的默认确认块数
DEFAULT_CONFIRMATIONS: int = 12

# 各链默认确认块数：概率终局链取较深值，快速终局链取 1
CONFIRMATION_DEFAULTS: dict[int, int] = {
    1: 12,  # Ethereum Mainnet
    11155111: 12,  # Sepolia
    137: 128,  # Polygon Mainnet
    80001: 128,  # Mumbai
    42161: 1,  # Arbitrum One
    421613: 1,  # Arbitrum Goerli
    10: 1,  # Optimism
    11155420: 1,  # Optimism Sepolia
    31337: 1,  # Hardhat
}

# 各链平均出块时间（秒），用作区块轮询间隔
BLOCK_TIME_DEFAULTS: dict[int, float] = {
    1: 12.0,
    11155111: 12.0,
    137: 2.0,
    80001: 2.0,
    42161: 0.25,
    421613: 0.25,
    10: 2.0,
    11155420: 2.0,
    31337: 1.0,
}

DEFAULT_BLOCK_TIME_S: float = 12.0

# description 最大长度（与合约约束一致）
DESCRIPTION_MAX_LENGTH: int = 500


def get_default_confirmations(chain_id: int) -> int:
    """按链特性获取默认确认块数"""
    return CONFIRMATION_DEFAULTS.get(chain_id, DEFAULT_CONFIRMATIONS)


def get_default_block_time(chain_id: int) -> float:
    """按链获取默认平均出块时间（秒）"""
    return BLOCK_TIME_DEFAULTS.get(chain_id, DEFAULT_BLOCK_TIME_S)


# error 记录默认保留 24 小时
DEFAULT_ERROR_RETENTION_S: int = 86400


def get_error_retention_s() -> int:
    """获取 error 记录保留期（秒），非法值回退默认"""
    val = os.environ.get("CHAINSYNC_ERROR_RETENTION_S", "")
    try:
        return int(val) if val else DEFAULT_ERROR_RETENTION_S
    except ValueError:
        return DEFAULT_ERROR_RETENTION_S
