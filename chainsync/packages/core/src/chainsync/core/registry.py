"""Chain Registry 加载 -- 环境变量 + 部署文件 + 合约 ABI

已知网络的 RPC 地址来自环境变量，合约地址来自
<deployments_dir>/deployment-<chainId>.json，ABI 来自编译产物或裸 ABI 列表。
缺少 RPC / 合约地址 / ABI 的链在启动时跳过并记录 warning，其余链照常加载。
"""

import json
import os
from pathlib import Path
from typing import Any

import structlog

from .config import (
    get_abi_path,
    get_default_block_time,
    get_default_confirmations,
    get_default_network,
    get_deployments_dir,
)
from .models.chain import ChainConfig, ChainRegistry

log = structlog.get_logger()

# key -> (chain_id, RPC 环境变量, 默认 RPC)
KNOWN_NETWORKS: dict[str, tuple[int, str, str]] = {
    "localhost": (31337, "LOCALHOST_RPC", "http://127.0.0.1:8545"),
    "sepolia": (11155111, "ETHEREUM_SEPOLIA_RPC", ""),
    "polygonMumbai": (80001, "POLYGON_MUMBAI_RPC", ""),
    "arbitrumGoerli": (421613, "ARBITRUM_GOERLI_RPC", ""),
    "optimismSepolia": (11155420, "OPTIMISM_SEPOLIA_RPC", ""),
}


def load_contract_abi(abi_path: Path) -> list[dict[str, Any]]:
    """读取合约 ABI（支持 {"abi": [...]} 编译产物和裸列表）

    Raises:
        FileNotFoundError / ValueError: 文件缺失或格式不符
    """
    data = json.loads(abi_path.read_text(encoding="utf-8"))
    abi = data.get("abi") if isinstance(data, dict) else data
    if not isinstance(abi, list):
        raise ValueError(f"ABI 格式无效: {abi_path}")
    return abi


def load_contract_address(deployments_dir: Path, chain_id: int) -> str | None:
    """从部署文件解析合约地址

    依次支持 proxy / todoListAddress / contracts.TodoListV2.address /
    contracts.TodoList.address 四种格式。
    """
    path = deployments_dir / f"deployment-{chain_id}.json"
    if not path.exists():
        return None

    data = json.loads(path.read_text(encoding="utf-8"))
    contracts = data.get("contracts") or {}
    return (
        data.get("proxy")
        or data.get("todoListAddress")
        or (contracts.get("TodoListV2") or {}).get("address")
        or (contracts.get("TodoList") or {}).get("address")
    )


def _confirmations_for(key: str, chain_id: int) -> int:
    env_var = f"CONFIRMATION_BLOCKS_{key.upper()}"
    default = get_default_confirmations(chain_id)
    if val := os.environ.get(env_var):
        try:
            return max(int(val), 0)
        except ValueError:
            log.warning(
                "invalid_confirmations_config",
                env_var=env_var,
                value=val,
                fallback=default,
            )
    return default


def load_chain_registry(
    deployments_dir: Path | None = None,
    abi_path: Path | None = None,
) -> ChainRegistry:
    """加载 Chain Registry

    Args:
        deployments_dir: 部署文件目录，默认取 CHAINSYNC_DEPLOYMENTS_DIR
        abi_path: ABI 文件路径，默认取 CHAINSYNC_ABI_PATH

    Returns:
        仅包含配置完整的链的 ChainRegistry
    """
    deployments_dir = deployments_dir or get_deployments_dir()
    abi_path = abi_path or get_abi_path()
    default_network = get_default_network()

    try:
        abi = load_contract_abi(abi_path)
    except (OSError, ValueError) as exc:
        # 所有链共用同一份 ABI，缺失时没有可用的链
        log.warning("contract_abi_unavailable", abi_path=str(abi_path), error=str(exc))
        return ChainRegistry(chains=[], default_network=default_network)

    chains: list[ChainConfig] = []
    for key, (chain_id, rpc_env, rpc_default) in KNOWN_NETWORKS.items():
        rpc_url = os.environ.get(rpc_env, rpc_default)
        if not rpc_url:
            log.warning("chain_skipped", network=key, chain_id=chain_id, reason="rpc_url_missing")
            continue

        try:
            address = load_contract_address(deployments_dir, chain_id)
        except (OSError, ValueError) as exc:
            log.warning(
                "chain_skipped",
                network=key,
                chain_id=chain_id,
                reason="deployment_unreadable",
                error=str(exc),
            )
            continue
        if not address:
            log.warning(
                "chain_skipped",
                network=key,
                chain_id=chain_id,
                reason="contract_address_missing",
            )
            continue

        chains.append(
            ChainConfig(
                key=key,
                name=key,
                chain_id=chain_id,
                rpc_url=rpc_url,
                rpc_backup_url=os.environ.get(f"{rpc_env}_BACKUP", ""),
                contract_address=address,
                abi=abi,
                confirmations=_confirmations_for(key, chain_id),
                block_time_s=get_default_block_time(chain_id),
            )
        )

    log.info(
        "chain_registry_loaded",
        chain_ids=[chain.chain_id for chain in chains],
        default_network=default_network,
    )
    return ChainRegistry(chains=chains, default_network=default_network)
