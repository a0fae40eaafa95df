"""TaskStore SQLite 实现

tasks 表是链上状态的缓存视图（projection）。
所有状态更新必须经由 MutationApplier 触发，此处仅提供数据库操作；
方法不自动提交事务，由调用方管理。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import SyncStatus
from ..models.task import Task

_COLUMNS = (
    "chain_id, blockchain_id, owner, description, completed, deleted, "
    "created_at, completed_at, deleted_at, transaction_hash, sync_status, "
    "last_synced_at"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_task_if_absent(self, task: Task) -> bool:
        """严格的 upsert-if-absent：键已存在时不做任何修改

        Returns:
            True 如果插入了新行
        """
        cursor = await self._conn.execute(
            f"""
            INSERT INTO tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (chain_id, blockchain_id) DO NOTHING
            """,
            self._task_to_row(task),
        )
        return cursor.rowcount == 1

    async def update_task(self, task: Task) -> None:
        """按 (chain_id, blockchain_id) 覆盖可变字段"""
        await self._conn.execute(
            """
            UPDATE tasks
            SET owner = ?, description = ?, completed = ?, deleted = ?,
                created_at = ?, completed_at = ?, deleted_at = ?,
                transaction_hash = ?, sync_status = ?, last_synced_at = ?
            WHERE chain_id = ? AND blockchain_id = ?
            """,
            (*self._task_to_row(task)[2:], task.chain_id, task.blockchain_id),
        )

    async def get_task(self, chain_id: int, blockchain_id: str) -> Task | None:
        """根据 (chain_id, blockchain_id) 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE chain_id = ? AND blockchain_id = ?",
            (chain_id, blockchain_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_active_tasks(self, chain_id: int) -> list[Task]:
        """查询某条链上未删除、未进入 error 的任务（漂移修正的扫描范围）

        error 行不再重试，等待保留期后由 purge_expired_errors 清理。
        """
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM tasks
            WHERE chain_id = ? AND deleted = 0 AND sync_status != ?
            ORDER BY created_at ASC
            """,
            (chain_id, SyncStatus.ERROR.value),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_tasks_by_owner(
        self,
        owner: str,
        include_completed: bool = True,
        include_deleted: bool = False,
    ) -> list[Task]:
        """按所有者查询任务，按 created_at 倒序"""
        sql = f"SELECT {_COLUMNS} FROM tasks WHERE owner = ?"
        if not include_completed:
            sql += " AND completed = 0"
        if not include_deleted:
            sql += " AND deleted = 0"
        sql += " ORDER BY created_at DESC"

        cursor = await self._conn.execute(sql, (owner.lower(),))
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def count_by_owner(self, owner: str) -> int:
        """统计所有者未删除的任务数"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE owner = ? AND deleted = 0",
            (owner.lower(),),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def purge_expired_errors(self, before: datetime) -> int:
        """物理清理 last_synced_at 早于 before 的 error 行

        Returns:
            删除的行数
        """
        cursor = await self._conn.execute(
            "DELETE FROM tasks WHERE sync_status = ? AND last_synced_at < ?",
            (SyncStatus.ERROR.value, before.isoformat()),
        )
        return cursor.rowcount

    @staticmethod
    def _task_to_row(task: Task) -> tuple:
        return (
            task.chain_id,
            task.blockchain_id,
            task.owner,
            task.description,
            int(task.completed),
            int(task.deleted),
            task.created_at.isoformat(),
            task.completed_at.isoformat() if task.completed_at else None,
            task.deleted_at.isoformat() if task.deleted_at else None,
            task.transaction_hash,
            task.sync_status.value,
            task.last_synced_at.isoformat(),
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            chain_id=row[0],
            blockchain_id=row[1],
            owner=row[2],
            description=row[3],
            completed=bool(row[4]),
            deleted=bool(row[5]),
            created_at=datetime.fromisoformat(row[6]),
            completed_at=datetime.fromisoformat(row[7]) if row[7] else None,
            deleted_at=datetime.fromisoformat(row[8]) if row[8] else None,
            transaction_hash=row[9],
            sync_status=SyncStatus(row[10]),
            last_synced_at=datetime.fromisoformat(row[11]),
        )
