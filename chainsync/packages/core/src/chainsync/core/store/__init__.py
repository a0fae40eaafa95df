"""chainsync Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite
import structlog

from .protocols import SyncLogStore, TaskStore
from .sqlite_init import init_db, verify_wal_mode
from .sync_log_store import SqliteSyncLogStore
from .task_store import SqliteTaskStore
from .transaction import save_task_with_record

log = structlog.get_logger()


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    write_lock 串行化同一连接上的事务，避免并发写入交错提交。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.log_store = SqliteSyncLogStore(conn)
        self.write_lock = asyncio.Lock()

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)
    if not await verify_wal_mode(conn):
        # 内存库等不支持 WAL 的场景，崩溃后可能丢失最近提交
        log.warning("sqlite_wal_unavailable", db_path=db_path)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "TaskStore",
    "SyncLogStore",
    "SqliteTaskStore",
    "SqliteSyncLogStore",
    "init_db",
    "verify_wal_mode",
    "save_task_with_record",
]
