"""枚举定义

包含 SyncStatus、ChainEventType、MutationSource、RecordType、ApplyOutcome 枚举，
以及 ReorgState 状态机的 VALID_TRANSITIONS 合法流转映射。
"""

from enum import StrEnum


class SyncStatus(StrEnum):
    """缓存记录的同步状态"""

    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"


class ChainEventType(StrEnum):
    """合约领域事件类型（取值与合约事件名一致）"""

    CREATED = "TaskCreated"
    COMPLETED = "TaskCompleted"
    DELETED = "TaskDeleted"
    RESTORED = "TaskRestored"


# 同一区块内的回放顺序：Created < Completed < Deleted < Restored
EVENT_REPLAY_ORDER: dict[ChainEventType, int] = {
    ChainEventType.CREATED: 0,
    ChainEventType.COMPLETED: 1,
    ChainEventType.DELETED: 2,
    ChainEventType.RESTORED: 3,
}


class MutationSource(StrEnum):
    """变更来源，用于区分实时事件、回放、漂移修正和人工同步"""

    LIVE = "live"
    BACKFILL = "backfill"
    DRIFT = "drift"
    MANUAL = "manual"


class RecordType(StrEnum):
    """同步日志记录类型"""

    TASK_CREATED = "TASK_CREATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_DELETED = "TASK_DELETED"
    TASK_RESTORED = "TASK_RESTORED"
    SNAPSHOT_SYNCED = "SNAPSHOT_SYNCED"
    DRIFT_CORRECTED = "DRIFT_CORRECTED"
    SYNC_STATUS_CHANGED = "SYNC_STATUS_CHANGED"


class ApplyOutcome(StrEnum):
    """单次变更的应用结果"""

    APPLIED = "applied"
    # 记录已处于目标状态（重复投递）
    NOOP = "noop"
    # 记录不存在，顺序缺口，留给回放或漂移修正
    MISSING = "missing"


class ReorgState(StrEnum):
    """重组检测状态机"""

    TRACKING = "TRACKING"
    REORG_SUSPECTED = "REORG_SUSPECTED"
    RESYNCING = "RESYNCING"


VALID_TRANSITIONS: dict[ReorgState, set[ReorgState]] = {
    ReorgState.TRACKING: {ReorgState.REORG_SUSPECTED},
    ReorgState.REORG_SUSPECTED: {ReorgState.RESYNCING, ReorgState.TRACKING},
    ReorgState.RESYNCING: {ReorgState.TRACKING},
}


def validate_transition(from_state: ReorgState, to_state: ReorgState) -> bool:
    """验证重组状态流转是否合法

    Args:
        from_state: 当前状态
        to_state: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_state, set())
    return to_state in allowed
