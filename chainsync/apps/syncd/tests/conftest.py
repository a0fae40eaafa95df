"""syncd 测试配置 -- 同步引擎组件 fixture"""

import asyncio
import inspect
from collections.abc import Callable

import pytest
import pytest_asyncio
from chainsync.core.applier import MutationApplier
from chainsync.syncd.config import SyncEngineConfig
from chainsync.syncd.services.backfill import BackfillEngine


@pytest_asyncio.fixture
async def applier(store_group) -> MutationApplier:
    return MutationApplier(store_group)


@pytest.fixture
def backfill(applier) -> BackfillEngine:
    return BackfillEngine(applier, chunk_blocks=100, timeout_s=5.0)


@pytest.fixture
def fast_config() -> SyncEngineConfig:
    """测试用引擎配置：短退避、关闭周期漂移修正"""
    return SyncEngineConfig(
        max_reconnect_attempts=3,
        reconnect_base_delay_s=0.02,
        sync_check_interval_s=0,
        backfill_chunk_blocks=100,
        backfill_timeout_s=5.0,
    )


@pytest.fixture
def wait_until() -> Callable:
    """轮询等待条件成立（支持异步谓词），超时抛 TimeoutError"""

    async def _wait(predicate: Callable, timeout: float = 3.0) -> None:
        async def _poll() -> None:
            while True:
                result = predicate()
                if inspect.isawaitable(result):
                    result = await result
                if result:
                    return
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
