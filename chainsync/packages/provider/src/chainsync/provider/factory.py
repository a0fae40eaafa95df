"""ChainClient 工厂

配置了备用 RPC 的链得到主备切换客户端，否则直接使用单节点客户端。
"""

from chainsync.core.models import ChainConfig

from .client import Web3ContractClient
from .config import RpcConfig
from .fallback import FallbackRpcClient
from .protocols import ChainClient


def create_chain_client(chain: ChainConfig, rpc_config: RpcConfig | None = None) -> ChainClient:
    """为一条链构建新的 ChainClient（每次连接调用一次）"""
    rpc_config = rpc_config or RpcConfig()
    primary = Web3ContractClient(chain, timeout_s=rpc_config.timeout_s)
    if not chain.rpc_backup_url:
        return primary
    fallback = Web3ContractClient(
        chain,
        rpc_url=chain.rpc_backup_url,
        timeout_s=rpc_config.timeout_s,
    )
    return FallbackRpcClient(primary=primary, fallback=fallback)
