"""chainsync Provider -- RPC / 合约访问抽象层

packages/provider 的公开接口导出。
"""

# 核心组件
from .client import Web3ContractClient

# 配置
from .config import RpcConfig, load_rpc_config
from .decoder import decode_event, decode_task_struct

# 异常
from .exceptions import (
    MalformedEventError,
    RpcError,
    RpcRangeLimitError,
    RpcTimeoutError,
    RpcUnreachableError,
    TaskNotFoundOnChainError,
)
from .factory import create_chain_client
from .fallback import FallbackRpcClient
from .protocols import ChainClient

__all__ = [
    "ChainClient",
    "Web3ContractClient",
    "FallbackRpcClient",
    "create_chain_client",
    "decode_event",
    "decode_task_struct",
    "RpcConfig",
    "load_rpc_config",
    "RpcError",
    "RpcUnreachableError",
    "RpcTimeoutError",
    "RpcRangeLimitError",
    "TaskNotFoundOnChainError",
    "MalformedEventError",
]
