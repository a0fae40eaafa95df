"""ConnectionSupervisor -- 单条链的连接生命周期

1. 新建 ChainClient，读取链高初始化 ChainCursor
2. 若此前处理过区块，回放断线期间的区块 [last + 1, head]
3. 为本连接新建事件通道 + BlockPoller + EventListener
4. 任一环节失败：标记 listener 不活跃，显式释放旧通道和客户端，
   等待 base * 2^(attempt-1) 后重连；超过重连上限后该链保持不活跃
"""

import asyncio
from collections.abc import Callable

import structlog
from chainsync.core.applier import MutationApplier
from chainsync.core.models import ChainConfig, ChainCursor, MutationSource
from chainsync.provider import ChainClient

from ..config import SyncEngineConfig
from .backfill import BackfillEngine
from .listener import BlockPoller, EventListener
from .reorg import ReorgDetector

log = structlog.get_logger()


class ConnectionSupervisor:
    """单条链的连接监管者

    ChainCursor 跨连接保留，每次成功连接重置为新的链高（不归零）。
    """

    def __init__(
        self,
        chain: ChainConfig,
        applier: MutationApplier,
        backfill: BackfillEngine,
        config: SyncEngineConfig,
        client_factory: Callable[[ChainConfig], ChainClient],
        poll_interval_s: float | None = None,
    ) -> None:
        self._chain = chain
        self._applier = applier
        self._backfill = backfill
        self._config = config
        self._client_factory = client_factory
        self._poll_interval_s = poll_interval_s or chain.block_time_s

        self.cursor = ChainCursor(
            chain_id=chain.chain_id,
            confirmations_required=chain.confirmations,
        )
        self._reorg_detector = ReorgDetector(self.cursor, backfill)
        self._client: ChainClient | None = None
        self._poller_task: asyncio.Task | None = None
        self._exhausted = False

    @property
    def chain(self) -> ChainConfig:
        return self._chain

    @property
    def client(self) -> ChainClient | None:
        """当前活跃连接的客户端，不活跃时为 None"""
        if not self.cursor.listener_active:
            return None
        return self._client

    @property
    def exhausted(self) -> bool:
        """重连次数已用尽"""
        return self._exhausted

    async def run(self) -> None:
        """连接 -> 监听 -> 失败重连，直到重连上限或被取消"""
        chain_id = self._chain.chain_id
        while True:
            try:
                error = await self._serve_connection()
            finally:
                self.cursor.listener_active = False
                await self._teardown()

            self.cursor.reconnect_attempts += 1
            attempt = self.cursor.reconnect_attempts
            if attempt > self._config.max_reconnect_attempts:
                self._exhausted = True
                log.error(
                    "reconnect_budget_exhausted",
                    chain_id=chain_id,
                    attempts=attempt - 1,
                    error=str(error),
                )
                return

            delay = self._config.reconnect_delay(attempt)
            log.warning(
                "chain_connection_lost",
                chain_id=chain_id,
                attempt=attempt,
                max_attempts=self._config.max_reconnect_attempts,
                delay_s=delay,
                error=str(error),
                error_type=type(error).__name__,
            )
            await asyncio.sleep(delay)

    async def _serve_connection(self) -> Exception:
        """建立一次连接并运行到失败，返回导致结束的异常"""
        try:
            client = await self._connect()
        except Exception as e:
            return e

        queue: asyncio.Queue = asyncio.Queue()
        poller = BlockPoller(
            chain_id=self._chain.chain_id,
            client=client,
            queue=queue,
            backfill=self._backfill,
            start_block=self.cursor.last_processed_block,
            interval_s=self._poll_interval_s,
        )
        listener = EventListener(
            chain_id=self._chain.chain_id,
            client=client,
            queue=queue,
            applier=self._applier,
            reorg_detector=self._reorg_detector,
        )
        self._poller_task = asyncio.create_task(
            poller.run(),
            name=f"block-poller-{self._chain.chain_id}",
        )
        try:
            return await listener.run()
        except Exception as e:
            return e

    async def _connect(self) -> ChainClient:
        """新建客户端并完成启动回放"""
        chain_id = self._chain.chain_id
        client = self._client_factory(self._chain)
        self._client = client

        reported = await client.get_chain_id()
        if reported != chain_id:
            log.warning("chain_id_mismatch", chain_id=chain_id, reported_chain_id=reported)

        head = await client.get_block_number()
        previous = self.cursor.last_processed_block
        if previous is not None and head > previous:
            # 断线期间产生的事件
            await self._backfill.replay(
                client,
                chain_id,
                previous + 1,
                head,
                source=MutationSource.BACKFILL,
            )

        self.cursor.last_processed_block = head
        self.cursor.reconnect_attempts = 0
        self.cursor.listener_active = True
        log.info(
            "chain_connected",
            chain_id=chain_id,
            rpc_url=client.rpc_url,
            block_number=head,
            confirmations=self.cursor.confirmations_required,
        )
        return client

    async def _teardown(self) -> None:
        """显式释放本连接的 poller 和客户端"""
        if self._poller_task is not None:
            self._poller_task.cancel()
            await asyncio.gather(self._poller_task, return_exceptions=True)
            self._poller_task = None

        if self._client is not None:
            client, self._client = self._client, None
            try:
                await client.close()
            except Exception as e:
                log.debug("chain_client_close_failed", chain_id=self._chain.chain_id, error=str(e))
