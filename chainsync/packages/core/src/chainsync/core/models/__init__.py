"""chainsync Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .chain import ChainConfig, ChainCursor, ChainRegistry
from .enums import (
    EVENT_REPLAY_ORDER,
    VALID_TRANSITIONS,
    ApplyOutcome,
    ChainEventType,
    MutationSource,
    RecordType,
    ReorgState,
    SyncStatus,
    validate_transition,
)
from .event import (
    ChainEvent,
    SyncRecord,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskRestoredEvent,
)
from .task import OnChainTask, Task, TaskVerification

__all__ = [
    # 枚举
    "SyncStatus",
    "ChainEventType",
    "MutationSource",
    "RecordType",
    "ApplyOutcome",
    "ReorgState",
    "EVENT_REPLAY_ORDER",
    # 状态机
    "VALID_TRANSITIONS",
    "validate_transition",
    # Task
    "Task",
    "OnChainTask",
    "TaskVerification",
    # Event
    "ChainEvent",
    "TaskCreatedEvent",
    "TaskCompletedEvent",
    "TaskDeletedEvent",
    "TaskRestoredEvent",
    "SyncRecord",
    # Chain
    "ChainConfig",
    "ChainRegistry",
    "ChainCursor",
]
