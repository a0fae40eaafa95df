"""MutationApplier -- 缓存的唯一写入入口

把已解码的链上事件、合约快照和漂移修正翻译成对缓存的幂等 upsert：
1. 按 (chain_id, blockchain_id) 获取 key 级锁，串行化读-改-写
2. 用 projection 归约出新状态
3. 单事务写入 Task + 同步日志记录

持锁期间不发起任何 RPC 调用，快照由调用方先读好再传入。
"""

import asyncio
from datetime import UTC, datetime

import structlog
from ulid import ULID

from .models.enums import ApplyOutcome, ChainEventType, MutationSource, RecordType, SyncStatus
from .models.event import (
    ChainEvent,
    SyncRecord,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskRestoredEvent,
)
from .models.task import OnChainTask, Task
from .projection import correct_drift, diff_against_chain, reduce_event, same_state, snapshot_to_task
from .store import StoreGroup
from .store.transaction import save_task_with_record

log = structlog.get_logger()

_RECORD_TYPES: dict[ChainEventType, RecordType] = {
    ChainEventType.CREATED: RecordType.TASK_CREATED,
    ChainEventType.COMPLETED: RecordType.TASK_COMPLETED,
    ChainEventType.DELETED: RecordType.TASK_DELETED,
    ChainEventType.RESTORED: RecordType.TASK_RESTORED,
}


class MutationApplier:
    """变更应用器

    key 级锁字典不做清理：asyncio.Lock 存在等待者时移除会破坏互斥。
    """

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}
        self._locks_guard = asyncio.Lock()

    async def apply(
        self,
        event: ChainEvent,
        source: MutationSource = MutationSource.LIVE,
    ) -> ApplyOutcome:
        """应用单个链上事件

        Returns:
            APPLIED / NOOP / MISSING。MISSING 以 error 级别记录，不伪造记录。
        """
        lock = await self._get_lock(event.key)
        async with lock:
            key = event.idempotency_key
            if key is not None and await self._stores.log_store.check_idempotency_key(key):
                # 同一条日志已经应用过，重放旧事件不能覆盖之后的状态
                log.debug(
                    "event_already_recorded",
                    chain_id=event.chain_id,
                    blockchain_id=event.blockchain_id,
                    event_type=event.kind.value,
                    idempotency_key=key,
                    source=source.value,
                )
                return ApplyOutcome.NOOP

            current = await self._stores.task_store.get_task(*event.key)
            now = datetime.now(UTC)
            outcome, updated = reduce_event(current, event, now)

            if outcome == ApplyOutcome.MISSING:
                log.error(
                    "task_missing_for_event",
                    chain_id=event.chain_id,
                    blockchain_id=event.blockchain_id,
                    event_type=event.kind.value,
                    block_number=event.block_number,
                    source=source.value,
                )
                return outcome

            if outcome == ApplyOutcome.NOOP:
                log.debug(
                    "event_already_applied",
                    chain_id=event.chain_id,
                    blockchain_id=event.blockchain_id,
                    event_type=event.kind.value,
                    source=source.value,
                )
                return outcome

            record = SyncRecord(
                record_id=str(ULID()),
                chain_id=event.chain_id,
                blockchain_id=event.blockchain_id,
                ts=now,
                type=_RECORD_TYPES[event.kind],
                source=source,
                block_number=event.block_number,
                transaction_hash=event.transaction_hash,
                payload={
                    "owner": event.owner,
                    "timestamp": event.timestamp.isoformat(),
                },
                idempotency_key=event.idempotency_key,
            )
            saved = await self._save(updated, record, create=current is None)
            if not saved:
                return ApplyOutcome.NOOP

        log.info(
            "task_event_applied",
            chain_id=event.chain_id,
            blockchain_id=event.blockchain_id,
            event_type=event.kind.value,
            block_number=event.block_number,
            source=source.value,
        )
        return ApplyOutcome.APPLIED

    async def apply_created(
        self,
        event: TaskCreatedEvent,
        source: MutationSource = MutationSource.LIVE,
    ) -> ApplyOutcome:
        return await self.apply(event, source)

    async def apply_completed(
        self,
        event: TaskCompletedEvent,
        source: MutationSource = MutationSource.LIVE,
    ) -> ApplyOutcome:
        return await self.apply(event, source)

    async def apply_deleted(
        self,
        event: TaskDeletedEvent,
        source: MutationSource = MutationSource.LIVE,
    ) -> ApplyOutcome:
        return await self.apply(event, source)

    async def apply_restored(
        self,
        event: TaskRestoredEvent,
        source: MutationSource = MutationSource.LIVE,
    ) -> ApplyOutcome:
        return await self.apply(event, source)

    async def apply_snapshot(
        self,
        chain_id: int,
        blockchain_id: str,
        snapshot: OnChainTask,
        source: MutationSource = MutationSource.MANUAL,
    ) -> tuple[ApplyOutcome, Task]:
        """用合约快照覆盖缓存（不存在则创建，transaction_hash 为空）"""
        lock = await self._get_lock((chain_id, blockchain_id))
        async with lock:
            current = await self._stores.task_store.get_task(chain_id, blockchain_id)
            now = datetime.now(UTC)
            updated = snapshot_to_task(chain_id, blockchain_id, snapshot, current, now)

            if same_state(current, updated):
                return ApplyOutcome.NOOP, current

            record = SyncRecord(
                record_id=str(ULID()),
                chain_id=chain_id,
                blockchain_id=blockchain_id,
                ts=now,
                type=RecordType.SNAPSHOT_SYNCED,
                source=source,
                payload={
                    "created": current is None,
                    "completed": snapshot.completed,
                    "deleted": snapshot.deleted,
                },
            )
            await self._save(updated, record, create=current is None)

        log.info(
            "task_snapshot_applied",
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            source=source.value,
            created=current is None,
        )
        return ApplyOutcome.APPLIED, updated

    async def apply_drift_correction(
        self,
        chain_id: int,
        blockchain_id: str,
        snapshot: OnChainTask,
        full: bool = True,
    ) -> dict[str, tuple]:
        """对比链上快照修正漂移，链上状态为准

        Returns:
            被修正的字段 {字段: (缓存值, 链上值)}，无漂移时为空
        """
        lock = await self._get_lock((chain_id, blockchain_id))
        async with lock:
            current = await self._stores.task_store.get_task(chain_id, blockchain_id)
            if current is None:
                return {}

            changes = diff_against_chain(current, snapshot, full=full)
            if not changes:
                if current.sync_status != SyncStatus.SYNCED:
                    await self._set_status(current, SyncStatus.SYNCED, MutationSource.DRIFT, "")
                return {}

            now = datetime.now(UTC)
            updated = correct_drift(current, snapshot, changes, now)
            record = SyncRecord(
                record_id=str(ULID()),
                chain_id=chain_id,
                blockchain_id=blockchain_id,
                ts=now,
                type=RecordType.DRIFT_CORRECTED,
                source=MutationSource.DRIFT,
                payload={
                    name: {"cached": cached, "chain": chain}
                    for name, (cached, chain) in changes.items()
                },
            )
            await self._save(updated, record, create=False)

        log.warning(
            "task_drift_corrected",
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            fields=sorted(changes),
        )
        return changes

    async def mark_sync_status(
        self,
        chain_id: int,
        blockchain_id: str,
        status: SyncStatus,
        reason: str = "",
    ) -> bool:
        """更新缓存记录的 sync_status（不改变其他状态）

        Returns:
            True 如果状态发生变化
        """
        lock = await self._get_lock((chain_id, blockchain_id))
        async with lock:
            current = await self._stores.task_store.get_task(chain_id, blockchain_id)
            if current is None or current.sync_status == status:
                return False
            await self._set_status(current, status, MutationSource.DRIFT, reason)

        log.info(
            "task_sync_status_changed",
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            from_status=current.sync_status.value,
            to_status=status.value,
            reason=reason,
        )
        return True

    async def _set_status(
        self,
        current: Task,
        status: SyncStatus,
        source: MutationSource,
        reason: str,
    ) -> None:
        # error 行的 last_synced_at 决定保留期，状态变化时刷新
        now = datetime.now(UTC)
        updated = current.model_copy(update={"sync_status": status, "last_synced_at": now})
        record = SyncRecord(
            record_id=str(ULID()),
            chain_id=current.chain_id,
            blockchain_id=current.blockchain_id,
            ts=now,
            type=RecordType.SYNC_STATUS_CHANGED,
            source=source,
            payload={
                "from_status": current.sync_status.value,
                "to_status": status.value,
                "reason": reason,
            },
        )
        await self._save(updated, record, create=False)

    async def _save(self, task: Task, record: SyncRecord, create: bool) -> bool:
        async with self._stores.write_lock:
            return await save_task_with_record(
                self._stores.conn,
                self._stores.task_store,
                self._stores.log_store,
                task,
                record,
                create=create,
            )

    async def _get_lock(self, key: tuple[int, str]) -> asyncio.Lock:
        """获取 key 级别锁，序列化同一任务的读-改-写。"""
        async with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock
