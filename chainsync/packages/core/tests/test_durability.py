"""进程重启持久性测试

测试内容：
1. 写入缓存 → 关闭 DB 连接 → 重新打开 → 数据完整
2. 重新打开后 WAL 模式仍生效
3. 不支持 WAL 的数据库（内存库）记录 warning 但仍可用
"""

from pathlib import Path
from unittest.mock import MagicMock

import chainsync.core.store as store_module
from chainsync.core.applier import MutationApplier
from chainsync.core.models import ApplyOutcome, ChainEventType
from chainsync.core.store import create_store_group
from chainsync.core.store.sqlite_init import verify_wal_mode


class TestDurability:
    """进程重启后缓存不丢失"""

    async def test_data_survives_restart(self, tmp_path: Path, make_event):
        """写入 → 关闭 → 重新打开 → 数据完整"""
        db_path = str(tmp_path / "durability.db")

        group = await create_store_group(db_path)
        applier = MutationApplier(group)
        await applier.apply(make_event(ChainEventType.CREATED))
        await applier.apply(make_event(ChainEventType.COMPLETED, block_number=2, timestamp=2000))
        await group.close()

        reopened = await create_store_group(db_path)
        try:
            task = await reopened.task_store.get_task(31337, "1")
            assert task is not None
            assert task.completed is True
            assert task.completed_at.timestamp() == 2000

            records = await reopened.log_store.list_for_task(31337, "1")
            assert len(records) == 2

            # 重启后重复投递仍被识别
            outcome = await MutationApplier(reopened).apply(make_event(ChainEventType.CREATED))
            assert outcome == ApplyOutcome.NOOP
            assert await verify_wal_mode(reopened.conn) is True
        finally:
            await reopened.close()

    async def test_wal_unavailable_logged(self, monkeypatch, make_event):
        """内存库无法进入 WAL 模式，启动时给出 warning"""
        log = MagicMock()
        monkeypatch.setattr(store_module, "log", log)

        group = await create_store_group(":memory:")
        try:
            assert await verify_wal_mode(group.conn) is False
            log.warning.assert_called_once_with("sqlite_wal_unavailable", db_path=":memory:")
            outcome = await MutationApplier(group).apply(make_event(ChainEventType.CREATED))
            assert outcome == ApplyOutcome.APPLIED
        finally:
            await group.close()
