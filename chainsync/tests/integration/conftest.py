"""集成测试共享 fixture"""

import json
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from chainsync.core.models import ChainConfig, ChainRegistry
from chainsync.core.store import StoreGroup, create_store_group
from chainsync.syncd.config import SyncEngineConfig
from chainsync.syncd.services.sync_service import SyncService

_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def _chain(key: str, chain_id: int, confirmations: int) -> ChainConfig:
    return ChainConfig(
        key=key,
        name=key,
        chain_id=chain_id,
        rpc_url=f"http://{key}.invalid",
        contract_address=_ADDRESS,
        confirmations=confirmations,
        block_time_s=0.01,
    )


@pytest.fixture
def chains(make_fake_chain) -> dict:
    """两条内存链：本地 Hardhat 与 Sepolia"""
    return {31337: make_fake_chain(31337), 11155111: make_fake_chain(11155111)}


@pytest.fixture
def registry() -> ChainRegistry:
    return ChainRegistry(
        chains=[_chain("localhost", 31337, 1), _chain("sepolia", 11155111, 2)],
        default_network="localhost",
    )


@pytest.fixture
def client_factory(chains) -> Callable:
    """按 chain_id 分派到对应内存链的客户端工厂"""
    return lambda chain: chains[chain.chain_id].client(chain)


@pytest.fixture
def engine_config() -> SyncEngineConfig:
    return SyncEngineConfig(
        max_reconnect_attempts=2,
        reconnect_base_delay_s=0.02,
        sync_check_interval_s=0.05,
        backfill_chunk_blocks=50,
    )


@pytest_asyncio.fixture
async def integration_store(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    group = await create_store_group(str(tmp_path / "integration.db"))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def sync_service(
    integration_store, registry, engine_config, client_factory
) -> AsyncGenerator[SyncService, None]:
    """以内存链为后端、尚未启动的 SyncService，区块轮询间隔取链配置的 0.01s"""
    service = SyncService(
        store_group=integration_store,
        registry=registry,
        config=engine_config,
        client_factory=client_factory,
    )
    yield service
    await service.stop()


@pytest.fixture
def deployment_env(tmp_path: Path, monkeypatch) -> Path:
    """CLI / lifespan 所需的数据目录：本地链部署文件 + ABI + 数据库路径"""
    data_dir = tmp_path / "data"
    deployments = data_dir / "deployments"
    deployments.mkdir(parents=True)
    (deployments / "deployment-31337.json").write_text(json.dumps({"proxy": _ADDRESS}))
    abi_path = data_dir / "abi.json"
    abi_path.write_text(json.dumps({"abi": []}))

    monkeypatch.setenv("CHAINSYNC_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CHAINSYNC_DB_PATH", str(data_dir / "sqlite" / "chainsync.db"))
    monkeypatch.setenv("CHAINSYNC_DEPLOYMENTS_DIR", str(deployments))
    monkeypatch.setenv("CHAINSYNC_ABI_PATH", str(abi_path))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    monkeypatch.delenv("LOCALHOST_RPC", raising=False)
    monkeypatch.delenv("CONFIRMATION_BLOCKS_LOCALHOST", raising=False)
    monkeypatch.delenv("CHAINSYNC_ERROR_RETENTION_S", raising=False)
    return data_dir
