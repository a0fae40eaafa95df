"""BlockPoller + EventListener -- 单连接的事件通道

每个连接拥有一个 asyncio.Queue：
- BlockPoller 轮询链高，把新区块内的事件和 BlockSeen 依次放入队列，
  连接失败时放入 ConnectionLost 后退出
- EventListener 按到达顺序消费：事件交给 MutationApplier，
  区块号交给 ReorgDetector

重连时整体丢弃旧队列和旧 poller，不存在残留的监听者。
"""

import asyncio
from dataclasses import dataclass

import structlog
from chainsync.core.applier import MutationApplier
from chainsync.core.models import MutationSource
from chainsync.provider import ChainClient

from .backfill import BackfillEngine
from .reorg import ReorgDetector

log = structlog.get_logger()


@dataclass(frozen=True)
class BlockSeen:
    """新区块通知"""

    block_number: int


@dataclass(frozen=True)
class ConnectionLost:
    """连接失败通知，携带原始异常"""

    error: Exception


class BlockPoller:
    """区块轮询器，是单个连接上事件通道的生产者"""

    def __init__(
        self,
        chain_id: int,
        client: ChainClient,
        queue: asyncio.Queue,
        backfill: BackfillEngine,
        start_block: int,
        interval_s: float,
    ) -> None:
        """
        Args:
            chain_id: 链 ID
            client: 本连接的 ChainClient
            queue: 本连接的事件通道
            backfill: 用于分段查询日志
            start_block: 已处理到的区块，从下一个区块开始取事件
            interval_s: 轮询间隔（秒）
        """
        self._chain_id = chain_id
        self._client = client
        self._queue = queue
        self._backfill = backfill
        self._last_head = start_block
        self._interval_s = interval_s

    async def run(self) -> None:
        """轮询直到连接失败或被取消"""
        try:
            while True:
                await asyncio.sleep(self._interval_s)
                await self.poll_once()
        except Exception as e:
            log.warning(
                "block_poller_failed",
                chain_id=self._chain_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._queue.put(ConnectionLost(error=e))

    async def poll_once(self) -> None:
        """读取一次链高，把新区块内的事件和区块通知放入队列"""
        head = await self._client.get_block_number()
        if head == self._last_head:
            return

        if head > self._last_head:
            chunks = await self._backfill.fetch(self._client, self._last_head + 1, head)
            for events in chunks:
                for event in events:
                    await self._queue.put(event)

        # 高度回退时也要通知，由 ReorgDetector 判断
        await self._queue.put(BlockSeen(block_number=head))
        self._last_head = head


class EventListener:
    """事件通道的唯一消费者"""

    def __init__(
        self,
        chain_id: int,
        client: ChainClient,
        queue: asyncio.Queue,
        applier: MutationApplier,
        reorg_detector: ReorgDetector,
    ) -> None:
        self._chain_id = chain_id
        self._client = client
        self._queue = queue
        self._applier = applier
        self._reorg_detector = reorg_detector

    async def run(self) -> Exception:
        """消费通道直到连接失败

        Returns:
            导致连接结束的异常

        Raises:
            RpcUnreachableError: 重组回放失败时向上传递，由 Supervisor 重连
        """
        while True:
            item = await self._queue.get()
            match item:
                case ConnectionLost(error=error):
                    return error
                case BlockSeen(block_number=block_number):
                    await self._reorg_detector.on_block(self._client, block_number)
                case _:
                    await self._dispatch(item)

    async def _dispatch(self, event) -> None:
        try:
            await self._applier.apply(event, MutationSource.LIVE)
        except Exception as e:
            # 单个事件失败不影响监听循环
            log.error(
                "event_apply_failed",
                chain_id=self._chain_id,
                blockchain_id=event.blockchain_id,
                event_type=event.kind.value,
                block_number=event.block_number,
                error=str(e),
                error_type=type(e).__name__,
            )
