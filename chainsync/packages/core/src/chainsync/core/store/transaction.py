"""Task 变更 + 同步日志原子事务封装

在同一 SQLite 事务内原子提交 Task 缓存更新和同步日志记录。
"""

import aiosqlite

from ..models.event import SyncRecord
from ..models.task import Task
from .sync_log_store import SqliteSyncLogStore
from .task_store import SqliteTaskStore


async def save_task_with_record(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    log_store: SqliteSyncLogStore,
    task: Task,
    record: SyncRecord,
    create: bool = False,
) -> bool:
    """在同一事务内原子提交 Task 写入和同步日志

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        task_store: TaskStore 实例
        log_store: SyncLogStore 实例
        task: 要写入的 Task
        record: 对应的同步日志记录
        create: True 时按 upsert-if-absent 插入，否则按键覆盖

    Returns:
        False 当 create=True 且键已存在，或日志的幂等键已存在（两者都不写入）

    Raises:
        Exception: 如果事务提交失败，自动回滚
    """
    try:
        if create:
            inserted = await task_store.insert_task_if_absent(task)
            if not inserted:
                await conn.rollback()
                return False
        else:
            await task_store.update_task(task)

        if not await log_store.append_record(record):
            # 幂等键已存在，Task 更新一并回滚
            await conn.rollback()
            return False

        # 原子提交
        await conn.commit()
        return True
    except Exception:
        await conn.rollback()
        raise
