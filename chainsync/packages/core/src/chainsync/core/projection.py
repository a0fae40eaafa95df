"""Projection 归约模块

把链上事件、合约快照折叠进 Task 缓存视图的纯函数。
MutationApplier 在持锁的读-改-写中调用这里的函数，
回放与测试也直接用 apply_event 在内存中重建状态。
"""

from collections.abc import Iterable
from datetime import datetime

from .models.enums import ApplyOutcome, SyncStatus
from .models.event import (
    ChainEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskRestoredEvent,
)
from .models.task import OnChainTask, Task

# 参与幂等比较的字段（last_synced_at 不算状态变化）
_STATE_FIELDS = (
    "owner",
    "description",
    "completed",
    "deleted",
    "created_at",
    "completed_at",
    "deleted_at",
    "transaction_hash",
    "sync_status",
)


def reduce_event(current: Task | None, event: ChainEvent, now: datetime) -> tuple[ApplyOutcome, Task | None]:
    """对单个 Task 应用一个链上事件

    Args:
        current: 当前缓存记录，不存在时为 None
        event: 已解码的链上事件
        now: 同步时间，写入 last_synced_at

    Returns:
        (结果, 新记录)。NOOP / MISSING 时新记录与 current 相同
    """
    match event:
        case TaskCreatedEvent():
            if current is not None:
                return ApplyOutcome.NOOP, current
            return ApplyOutcome.APPLIED, Task(
                chain_id=event.chain_id,
                blockchain_id=event.blockchain_id,
                owner=event.owner,
                description=event.description,
                completed=False,
                deleted=False,
                created_at=event.timestamp,
                transaction_hash=event.transaction_hash,
                sync_status=SyncStatus.SYNCED,
                last_synced_at=now,
            )
        case TaskCompletedEvent():
            if current is None:
                return ApplyOutcome.MISSING, None
            updated = current.model_copy(
                update={
                    "completed": True,
                    "completed_at": current.completed_at if current.completed else event.timestamp,
                    "sync_status": SyncStatus.SYNCED,
                }
            )
        case TaskDeletedEvent():
            if current is None:
                return ApplyOutcome.MISSING, None
            updated = current.model_copy(
                update={
                    "deleted": True,
                    "deleted_at": current.deleted_at if current.deleted else event.timestamp,
                    "sync_status": SyncStatus.SYNCED,
                }
            )
        case TaskRestoredEvent():
            if current is None:
                return ApplyOutcome.MISSING, None
            updated = current.model_copy(
                update={
                    "deleted": False,
                    "deleted_at": None,
                    "sync_status": SyncStatus.SYNCED,
                }
            )
        case _:
            raise TypeError(f"未知事件类型: {type(event).__name__}")

    if same_state(current, updated):
        return ApplyOutcome.NOOP, current
    return ApplyOutcome.APPLIED, updated.model_copy(update={"last_synced_at": now})


def apply_event(tasks: dict[tuple[int, str], Task], event: ChainEvent, now: datetime) -> ApplyOutcome:
    """将单个事件应用到内存中的 Task 映射（就地修改）"""
    outcome, task = reduce_event(tasks.get(event.key), event, now)
    if outcome == ApplyOutcome.APPLIED and task is not None:
        tasks[event.key] = task
    return outcome


def replay(events: Iterable[ChainEvent], now: datetime) -> dict[tuple[int, str], Task]:
    """按给定顺序回放事件，返回重建后的 Task 映射"""
    tasks: dict[tuple[int, str], Task] = {}
    for event in events:
        apply_event(tasks, event, now)
    return tasks


def snapshot_to_task(
    chain_id: int,
    blockchain_id: str,
    snapshot: OnChainTask,
    current: Task | None,
    now: datetime,
) -> Task:
    """用合约快照覆盖所有权威字段（人工单任务同步）

    新建时 transaction_hash 为空，已存在时保留原值。
    """
    return Task(
        chain_id=chain_id,
        blockchain_id=blockchain_id,
        owner=snapshot.owner,
        description=snapshot.description,
        completed=snapshot.completed,
        deleted=snapshot.deleted,
        created_at=snapshot.created_at,
        completed_at=snapshot.completed_at,
        deleted_at=snapshot.deleted_at,
        transaction_hash=current.transaction_hash if current else "",
        sync_status=SyncStatus.SYNCED,
        last_synced_at=now,
    )


def diff_against_chain(
    current: Task,
    snapshot: OnChainTask,
    full: bool = True,
) -> dict[str, tuple]:
    """比较缓存与链上状态，返回 {字段: (缓存值, 链上值)}

    full=False 时只看 completed 由 False 到 True 的方向；
    full=True 时 completed 双向、deleted、description 都以链为准。
    """
    changes: dict[str, tuple] = {}
    if snapshot.completed and not current.completed:
        changes["completed"] = (current.completed, snapshot.completed)
    if not full:
        return changes

    if current.completed and not snapshot.completed:
        changes["completed"] = (current.completed, snapshot.completed)
    if current.deleted != snapshot.deleted:
        changes["deleted"] = (current.deleted, snapshot.deleted)
    if current.description != snapshot.description:
        changes["description"] = (current.description, snapshot.description)
    return changes


def correct_drift(
    current: Task,
    snapshot: OnChainTask,
    changes: dict[str, tuple],
    now: datetime,
) -> Task:
    """按 diff_against_chain 的结果修正缓存记录"""
    update: dict = {"sync_status": SyncStatus.SYNCED, "last_synced_at": now}
    if "completed" in changes:
        update["completed"] = snapshot.completed
        update["completed_at"] = (snapshot.completed_at or now) if snapshot.completed else None
    if "deleted" in changes:
        update["deleted"] = snapshot.deleted
        update["deleted_at"] = (snapshot.deleted_at or now) if snapshot.deleted else None
    if "description" in changes:
        update["description"] = snapshot.description
    return current.model_copy(update=update)


def same_state(left: Task | None, right: Task | None) -> bool:
    """比较两条记录的状态字段（忽略 last_synced_at）"""
    if left is None or right is None:
        return left is right
    return all(getattr(left, name) == getattr(right, name) for name in _STATE_FIELDS)
