"""packages/core 测试配置 -- 核心层 fixture"""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
from chainsync.core.applier import MutationApplier
from chainsync.core.models import OnChainTask, SyncStatus, Task


@pytest_asyncio.fixture
async def applier(store_group) -> MutationApplier:
    """绑定临时 Store 的 MutationApplier"""
    return MutationApplier(store_group)


@pytest.fixture
def make_task():
    """缓存 Task 构造器"""

    def _make(
        blockchain_id: str = "1",
        chain_id: int = 31337,
        owner: str = "0xabc",
        description: str = "Buy milk",
        completed: bool = False,
        deleted: bool = False,
        sync_status: SyncStatus = SyncStatus.SYNCED,
        created_ts: int = 1000,
        last_synced_at: datetime | None = None,
    ) -> Task:
        return Task(
            chain_id=chain_id,
            blockchain_id=blockchain_id,
            owner=owner,
            description=description,
            completed=completed,
            deleted=deleted,
            created_at=datetime.fromtimestamp(created_ts, tz=UTC),
            completed_at=datetime.fromtimestamp(created_ts + 1, tz=UTC) if completed else None,
            deleted_at=datetime.fromtimestamp(created_ts + 2, tz=UTC) if deleted else None,
            transaction_hash="0xfeed",
            sync_status=sync_status,
            last_synced_at=last_synced_at or datetime.now(UTC),
        )

    return _make


@pytest.fixture
def make_snapshot():
    """合约 getTask 快照构造器"""

    def _make(
        owner: str = "0xabc",
        description: str = "Buy milk",
        completed: bool = False,
        deleted: bool = False,
        completed_ts: int | None = None,
        deleted_ts: int | None = None,
    ) -> OnChainTask:
        return OnChainTask(
            owner=owner,
            description=description,
            completed=completed,
            deleted=deleted,
            created_at=datetime.fromtimestamp(1000, tz=UTC),
            completed_at=datetime.fromtimestamp(completed_ts, tz=UTC) if completed_ts else None,
            deleted_at=datetime.fromtimestamp(deleted_ts, tz=UTC) if deleted_ts else None,
        )

    return _make
