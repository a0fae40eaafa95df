"""SyncService -- 同步引擎的服务对象

组装 MutationApplier、BackfillEngine、每条链的 ConnectionSupervisor
和 DriftReconciler，并向外部协作方（REST 层、CLI）暴露查询与运维操作：
1. get_task / list_tasks_by_owner / count_by_owner 读缓存
2. get_network_info / get_health_status / check_health 查看链与引擎状态
3. resync / sync_task / verify_task 直接访问链上数据

不是全局单例：存储、链配置、引擎配置和客户端工厂均由调用方注入。
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from chainsync.core.applier import MutationApplier
from chainsync.core.models import (
    ChainConfig,
    ChainRegistry,
    MutationSource,
    Task,
    TaskVerification,
)
from chainsync.core.store import StoreGroup
from chainsync.provider import (
    ChainClient,
    RpcConfig,
    RpcError,
    TaskNotFoundOnChainError,
    create_chain_client,
)

from ..config import SyncEngineConfig
from .backfill import BackfillEngine, BackfillResult
from .reconciler import DriftReconciler
from .supervisor import ConnectionSupervisor

log = structlog.get_logger()

# verify_task 比较的字段
_VERIFY_FIELDS = ("owner", "description", "completed", "deleted")


class ChainUnavailableError(Exception):
    """请求的链未在 Chain Registry 中配置"""

    def __init__(self, chain_id: int) -> None:
        super().__init__(f"链未配置: chain_id={chain_id}")
        self.chain_id = chain_id


class SyncService:
    """同步引擎服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        registry: ChainRegistry,
        config: SyncEngineConfig | None = None,
        client_factory: Callable[[ChainConfig], ChainClient] | None = None,
        rpc_config: RpcConfig | None = None,
    ) -> None:
        self._stores = store_group
        self._registry = registry
        self._config = config or SyncEngineConfig()
        rpc_config = rpc_config or RpcConfig()
        self._client_factory = client_factory or (
            lambda chain: create_chain_client(chain, rpc_config)
        )

        self._applier = MutationApplier(store_group)
        self._backfill = BackfillEngine(
            self._applier,
            chunk_blocks=self._config.backfill_chunk_blocks,
            timeout_s=self._config.backfill_timeout_s,
        )
        self._supervisors: dict[int, ConnectionSupervisor] = {
            chain.chain_id: ConnectionSupervisor(
                chain=chain,
                applier=self._applier,
                backfill=self._backfill,
                config=self._config,
                client_factory=self._client_factory,
                poll_interval_s=rpc_config.poll_interval_s,
            )
            for chain in registry.chains
        }
        self._reconciler = DriftReconciler(
            applier=self._applier,
            task_store=store_group.task_store,
            config=self._config,
            chain_ids=list(self._supervisors),
            client_for=self._active_client,
        )
        self._runners: dict[int, asyncio.Task] = {}
        self._initialized = False

    @property
    def applier(self) -> MutationApplier:
        return self._applier

    @property
    def reconciler(self) -> DriftReconciler:
        return self._reconciler

    def supervisor(self, chain_id: int) -> ConnectionSupervisor:
        if chain_id not in self._supervisors:
            raise ChainUnavailableError(chain_id)
        return self._supervisors[chain_id]

    async def start(self) -> None:
        """为每条链启动监管任务，并启动漂移修正循环"""
        if self._initialized:
            return
        for chain_id, supervisor in self._supervisors.items():
            self._runners[chain_id] = asyncio.create_task(
                supervisor.run(),
                name=f"chain-supervisor-{chain_id}",
            )
        self._reconciler.start()
        self._initialized = True
        log.info("sync_service_started", chain_ids=list(self._supervisors))

    async def stop(self) -> None:
        """停止所有链的监管任务和漂移修正循环"""
        await self._reconciler.stop()
        for runner in self._runners.values():
            runner.cancel()
        await asyncio.gather(*self._runners.values(), return_exceptions=True)
        self._runners.clear()
        self._initialized = False
        log.info("sync_service_stopped")

    def is_initialized(self) -> bool:
        return self._initialized

    async def get_task(self, chain_id: int, blockchain_id: str) -> Task | None:
        """查询缓存中的任务"""
        return await self._stores.task_store.get_task(chain_id, blockchain_id)

    async def list_tasks_by_owner(
        self,
        owner: str,
        include_completed: bool = True,
        include_deleted: bool = False,
    ) -> list[Task]:
        """按所有者查询缓存任务"""
        return await self._stores.task_store.list_tasks_by_owner(
            owner,
            include_completed=include_completed,
            include_deleted=include_deleted,
        )

    async def count_by_owner(self, owner: str) -> int:
        return await self._stores.task_store.count_by_owner(owner)

    async def get_network_info(self) -> dict[int, dict[str, Any]]:
        """各链的网络信息，读取失败的链返回 {"error": ...}"""
        info: dict[int, dict[str, Any]] = {}
        for chain in self._registry.chains:
            try:
                async with self._borrow_client(chain.chain_id) as client:
                    block_number = await client.get_block_number()
            except RpcError as e:
                info[chain.chain_id] = {"error": str(e)}
                continue
            info[chain.chain_id] = {
                "name": chain.name,
                "chain_id": chain.chain_id,
                "block_number": block_number,
                "contract_address": chain.contract_address,
            }
        return info

    def get_health_status(self) -> dict[str, Any]:
        """引擎健康状态：每条链的游标与连接状态 + 漂移修正统计"""
        chains: dict[int, dict[str, Any]] = {}
        for chain_id, supervisor in self._supervisors.items():
            cursor = supervisor.cursor
            chains[chain_id] = {
                "name": supervisor.chain.name,
                "listener_active": cursor.listener_active,
                "last_processed_block": cursor.last_processed_block,
                "reconnect_attempts": cursor.reconnect_attempts,
                "reconnect_exhausted": supervisor.exhausted,
                "confirmations_required": cursor.confirmations_required,
                "reorg_state": cursor.reorg_state.value,
            }
        active = sum(1 for chain in chains.values() if chain["listener_active"])
        return {
            "initialized": self._initialized,
            "chains_total": len(chains),
            "chains_active": active,
            "chains": chains,
            "reconciler": {
                "running": self._reconciler.running,
                "ticks": self._reconciler.ticks,
                "total_corrected": self._reconciler.total_corrected,
            },
        }

    async def check_health(self) -> dict[str, Any]:
        """在 get_health_status 基础上探测各链 RPC，并按来源统计同步记录

        records_by_source 中 drift 一项即漂移修正写入的记录数，
        与实时事件、回放、人工同步的记录分开计数。
        """
        status = self.get_health_status()
        for chain_id, chain in status["chains"].items():
            async with self._borrow_client(chain_id) as client:
                chain["rpc_reachable"] = await client.health_check()
            chain["records_by_source"] = await self._stores.log_store.count_by_source(chain_id)
        return status

    async def resync(
        self,
        chain_id: int,
        from_block: int,
        to_block: int | None = None,
    ) -> BackfillResult:
        """人工触发的区间回放，to_block 缺省时只回放 from_block 这一个区块"""
        async with self._borrow_client(chain_id) as client:
            return await self._backfill.replay(
                client,
                chain_id,
                from_block,
                from_block if to_block is None else to_block,
                source=MutationSource.MANUAL,
            )

    async def sync_task(self, chain_id: int, blockchain_id: str) -> Task:
        """直接读取 getTask 并覆盖缓存中该任务的所有权威字段

        Raises:
            TaskNotFoundOnChainError: 链上不存在该任务
        """
        async with self._borrow_client(chain_id) as client:
            snapshot = await client.get_task(blockchain_id)
        _, task = await self._applier.apply_snapshot(
            chain_id,
            blockchain_id,
            snapshot,
            source=MutationSource.MANUAL,
        )
        return task

    async def verify_task(self, chain_id: int, blockchain_id: str) -> TaskVerification:
        """比较缓存与链上的 owner / description / completed / deleted"""
        cached = await self._stores.task_store.get_task(chain_id, blockchain_id)
        cached_view = (
            {name: getattr(cached, name) for name in _VERIFY_FIELDS} if cached else None
        )

        try:
            async with self._borrow_client(chain_id) as client:
                snapshot = await client.get_task(blockchain_id)
        except TaskNotFoundOnChainError as e:
            return TaskVerification(
                chain_id=chain_id,
                blockchain_id=blockchain_id,
                is_valid=False,
                cached=cached_view,
                error=str(e),
            )

        chain_view = {name: getattr(snapshot, name) for name in _VERIFY_FIELDS}
        return TaskVerification(
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            is_valid=cached_view == chain_view,
            cached=cached_view,
            chain=chain_view,
        )

    def _active_client(self, chain_id: int) -> ChainClient | None:
        supervisor = self._supervisors.get(chain_id)
        return supervisor.client if supervisor else None

    @asynccontextmanager
    async def _borrow_client(self, chain_id: int) -> AsyncIterator[ChainClient]:
        """优先使用活跃连接；链未连接时（如 CLI 场景）临时建立客户端，用完关闭"""
        supervisor = self.supervisor(chain_id)
        client = supervisor.client
        if client is not None:
            yield client
            return

        client = self._client_factory(supervisor.chain)
        try:
            yield client
        finally:
            await client.close()
