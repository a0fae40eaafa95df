"""Store Protocol 接口定义

定义 TaskStore（抽象缓存存储）与 SyncLogStore 的接口，
使用 Python Protocol 实现结构化子类型（duck typing），
替换后端时只需满足同一组方法。
"""

from datetime import datetime
from typing import Protocol

from ..models.event import SyncRecord
from ..models.task import Task


class TaskStore(Protocol):
    """Task 缓存存储接口"""

    async def insert_task_if_absent(self, task: Task) -> bool:
        """键不存在时插入，返回是否插入"""
        ...

    async def update_task(self, task: Task) -> None:
        """按 (chain_id, blockchain_id) 覆盖可变字段"""
        ...

    async def get_task(self, chain_id: int, blockchain_id: str) -> Task | None:
        """根据 (chain_id, blockchain_id) 查询任务"""
        ...

    async def list_active_tasks(self, chain_id: int) -> list[Task]:
        """查询某条链上未删除且 sync_status 不是 error 的任务"""
        ...

    async def list_tasks_by_owner(
        self,
        owner: str,
        include_completed: bool = True,
        include_deleted: bool = False,
    ) -> list[Task]:
        """按所有者查询任务"""
        ...

    async def count_by_owner(self, owner: str) -> int:
        """统计所有者未删除的任务数"""
        ...

    async def purge_expired_errors(self, before: datetime) -> int:
        """清理过期的 error 行"""
        ...


class SyncLogStore(Protocol):
    """同步日志存储接口

    append-only：只允许插入，不允许更新或删除。
    """

    async def append_record(self, record: SyncRecord) -> bool:
        """追加记录，幂等键冲突时返回 False"""
        ...

    async def list_for_task(self, chain_id: int, blockchain_id: str) -> list[SyncRecord]:
        """查询指定任务的所有同步记录"""
        ...

    async def check_idempotency_key(self, key: str) -> bool:
        """检查幂等键是否已记录"""
        ...

    async def count_by_source(self, chain_id: int | None = None) -> dict[str, int]:
        """按来源统计记录数，chain_id 为 None 时统计所有链"""
        ...
