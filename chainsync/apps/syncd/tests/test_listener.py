"""BlockPoller + EventListener 测试

测试内容：
1. 轮询到新区块时按回放顺序入队事件，随后入队 BlockSeen
2. 高度未变不入队，高度回退只入队 BlockSeen
3. 连接失败时入队 ConnectionLost
4. 监听循环应用事件、转交区块号，单事件失败不中断
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from chainsync.core.models import ChainCursor, ChainEventType, MutationSource
from chainsync.syncd.services.listener import (
    BlockPoller,
    BlockSeen,
    ConnectionLost,
    EventListener,
)
from chainsync.syncd.services.reorg import ReorgDetector


def _drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def _poller(fake_chain, backfill, queue, start_block: int = 0) -> BlockPoller:
    return BlockPoller(
        chain_id=31337,
        client=fake_chain.client(),
        queue=queue,
        backfill=backfill,
        start_block=start_block,
        interval_s=0.01,
    )


class TestBlockPoller:
    """区块轮询"""

    async def test_new_blocks_enqueue_events_then_block(self, fake_chain, backfill, make_event):
        fake_chain.emit(make_event(ChainEventType.COMPLETED, block_number=2, log_index=0))
        fake_chain.emit(make_event(ChainEventType.CREATED, block_number=2, log_index=1))
        fake_chain.emit(make_event(ChainEventType.CREATED, task_id=2, block_number=3))
        queue: asyncio.Queue = asyncio.Queue()

        await _poller(fake_chain, backfill, queue, start_block=1).poll_once()

        items = _drain(queue)
        assert [getattr(i, "kind", None) for i in items[:3]] == [
            ChainEventType.CREATED,
            ChainEventType.COMPLETED,
            ChainEventType.CREATED,
        ]
        assert items[3] == BlockSeen(block_number=3)
        assert fake_chain.event_queries == [(2, 3)]

    async def test_same_head_enqueues_nothing(self, fake_chain, backfill):
        fake_chain.head = 5
        queue: asyncio.Queue = asyncio.Queue()

        await _poller(fake_chain, backfill, queue, start_block=5).poll_once()
        assert queue.empty()

    async def test_head_regression_enqueues_block_only(self, fake_chain, backfill):
        fake_chain.head = 3
        queue: asyncio.Queue = asyncio.Queue()

        await _poller(fake_chain, backfill, queue, start_block=5).poll_once()

        assert _drain(queue) == [BlockSeen(block_number=3)]
        assert fake_chain.event_queries == []

    async def test_run_reports_connection_lost(self, fake_chain, backfill):
        fake_chain.online = False
        queue: asyncio.Queue = asyncio.Queue()

        await asyncio.wait_for(_poller(fake_chain, backfill, queue).run(), timeout=1)

        item = queue.get_nowait()
        assert isinstance(item, ConnectionLost)
        assert "fake://31337" in str(item.error)


class TestEventListener:
    """事件消费"""

    async def test_applies_events_and_forwards_blocks(self, fake_chain, backfill, make_event):
        queue: asyncio.Queue = asyncio.Queue()
        applier = MagicMock()
        applier.apply = AsyncMock()
        cursor = ChainCursor(chain_id=31337, last_processed_block=1, confirmations_required=1)
        listener = EventListener(
            chain_id=31337,
            client=fake_chain.client(),
            queue=queue,
            applier=applier,
            reorg_detector=ReorgDetector(cursor, backfill),
        )
        event = make_event(ChainEventType.CREATED, block_number=2)
        error = ConnectionError("gone")
        for item in (event, BlockSeen(2), ConnectionLost(error)):
            queue.put_nowait(item)

        assert await listener.run() is error
        applier.apply.assert_awaited_once_with(event, MutationSource.LIVE)
        assert cursor.last_processed_block == 2

    async def test_apply_failure_does_not_stop_loop(self, fake_chain, backfill, make_event):
        queue: asyncio.Queue = asyncio.Queue()
        applier = MagicMock()
        applier.apply = AsyncMock(side_effect=[RuntimeError("boom"), None])
        cursor = ChainCursor(chain_id=31337, confirmations_required=1)
        listener = EventListener(
            chain_id=31337,
            client=fake_chain.client(),
            queue=queue,
            applier=applier,
            reorg_detector=ReorgDetector(cursor, backfill),
        )
        queue.put_nowait(make_event(ChainEventType.CREATED, task_id=1))
        queue.put_nowait(make_event(ChainEventType.CREATED, task_id=2, log_index=1))
        queue.put_nowait(ConnectionLost(ConnectionError()))

        await listener.run()
        assert applier.apply.await_count == 2
