"""DriftReconciler -- 周期性漂移修正（自愈兜底）

按固定间隔依次检查每条链：对每个未删除的缓存任务读取 getTask，
与缓存比较，不一致时经由 MutationApplier 以 drift 来源修正。
链上已不存在的任务跳过；单个任务连续读取失败达到上限后标记 error，
交由存储层保留策略清理。
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from chainsync.core.applier import MutationApplier
from chainsync.core.models import SyncStatus
from chainsync.core.store import TaskStore
from chainsync.provider import (
    ChainClient,
    RpcError,
    RpcUnreachableError,
    TaskNotFoundOnChainError,
)

from ..config import SyncEngineConfig

log = structlog.get_logger()


@dataclass
class DriftReport:
    """单条链一轮检查的统计"""

    chain_id: int
    checked: int = 0
    corrected: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False


class DriftReconciler:
    """漂移修正循环，单独的 asyncio 任务，逐链顺序执行"""

    def __init__(
        self,
        applier: MutationApplier,
        task_store: TaskStore,
        config: SyncEngineConfig,
        chain_ids: list[int],
        client_for: Callable[[int], ChainClient | None],
    ) -> None:
        """
        Args:
            applier: 变更应用器
            task_store: 缓存存储（只读扫描）
            config: 引擎配置（间隔、修正范围、失败上限）
            chain_ids: 需要检查的链
            client_for: 返回链当前活跃客户端，不活跃时 None
        """
        self._applier = applier
        self._task_store = task_store
        self._config = config
        self._chain_ids = chain_ids
        self._client_for = client_for
        self._failures: dict[tuple[int, str], int] = {}
        self._task: asyncio.Task | None = None
        self.ticks = 0
        self.total_corrected = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """启动周期循环（间隔为 0 时不启动）"""
        if self._config.sync_check_interval_s <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="drift-reconciler")
        log.info("drift_reconciler_started", interval_s=self._config.sync_check_interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        log.info("drift_reconciler_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._config.sync_check_interval_s)
            try:
                await self.tick()
            except Exception as e:
                log.error("drift_tick_failed", error=str(e), error_type=type(e).__name__)

    async def tick(self) -> list[DriftReport]:
        """检查所有链一轮"""
        reports: list[DriftReport] = []
        for chain_id in self._chain_ids:
            client = self._client_for(chain_id)
            if client is None:
                log.debug("drift_check_skipped_inactive_chain", chain_id=chain_id)
                continue
            reports.append(await self.check_chain(chain_id, client))
        self.ticks += 1
        return reports

    async def check_chain(self, chain_id: int, client: ChainClient) -> DriftReport:
        """检查一条链上所有未删除的缓存任务"""
        report = DriftReport(chain_id=chain_id)
        tasks = await self._task_store.list_active_tasks(chain_id)

        for task in tasks:
            key = task.key
            report.checked += 1
            try:
                snapshot = await client.get_task(task.blockchain_id)
            except TaskNotFoundOnChainError:
                report.skipped += 1
                continue
            except RpcUnreachableError as e:
                # 整条链不可达不算单个任务的失败，留给下一轮
                report.aborted = True
                log.warning("drift_check_aborted", chain_id=chain_id, error=str(e))
                break
            except RpcError as e:
                report.failed += 1
                await self._record_failure(task.chain_id, task.blockchain_id, e)
                continue

            self._failures.pop(key, None)
            changes = await self._applier.apply_drift_correction(
                chain_id,
                task.blockchain_id,
                snapshot,
                full=self._config.drift_full_reconcile,
            )
            if changes:
                report.corrected += 1

        self.total_corrected += report.corrected
        if report.corrected or report.failed:
            log.info(
                "drift_check_completed",
                chain_id=chain_id,
                checked=report.checked,
                corrected=report.corrected,
                skipped=report.skipped,
                failed=report.failed,
            )
        return report

    async def _record_failure(self, chain_id: int, blockchain_id: str, error: Exception) -> None:
        key = (chain_id, blockchain_id)
        count = self._failures.get(key, 0) + 1
        self._failures[key] = count

        if count >= self._config.max_sync_failures:
            status = SyncStatus.ERROR
        else:
            status = SyncStatus.PENDING
        log.warning(
            "drift_read_failed",
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            consecutive_failures=count,
            error=str(error),
        )
        await self._applier.mark_sync_status(chain_id, blockchain_id, status, reason=str(error))
