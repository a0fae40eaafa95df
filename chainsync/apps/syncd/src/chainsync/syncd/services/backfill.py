"""BackfillEngine -- 历史日志回放

按闭区间查询四类任务事件并经由 MutationApplier 回放：
区块号升序，同一区块内 Created < Completed < Deleted < Restored。
区间按 chunk_blocks 分段查询，节点拒绝过大区间时分段自动减半；
每段查询带超时，超时按瞬时连接错误处理。
"""

import asyncio
from dataclasses import dataclass

import structlog
from chainsync.core.applier import MutationApplier
from chainsync.core.models import EVENT_REPLAY_ORDER, ApplyOutcome, ChainEvent, MutationSource
from chainsync.provider import ChainClient, RpcRangeLimitError, RpcTimeoutError

log = structlog.get_logger()


def replay_order(event: ChainEvent) -> tuple[int, int, int]:
    """回放排序键：(区块号, 事件类型序, 日志序号)"""
    return event.block_number, EVENT_REPLAY_ORDER[event.kind], event.log_index


@dataclass
class BackfillResult:
    """一次回放的统计"""

    chain_id: int
    from_block: int
    to_block: int
    events: int = 0
    applied: int = 0
    noop: int = 0
    missing: int = 0
    failed: int = 0
    chunks: int = 0


class BackfillEngine:
    """历史日志回放引擎

    可被任意小的区间反复调用；回放依赖 MutationApplier 的幂等性，
    与实时事件重叠不会产生重复记录。
    """

    def __init__(
        self,
        applier: MutationApplier,
        chunk_blocks: int = 2000,
        timeout_s: float = 30.0,
    ) -> None:
        self._applier = applier
        self._chunk_blocks = max(chunk_blocks, 1)
        self._timeout_s = timeout_s

    async def fetch(
        self,
        client: ChainClient,
        from_block: int,
        to_block: int,
    ) -> list[list[ChainEvent]]:
        """分段查询事件，返回按回放顺序排好的各段事件"""
        _validate_range(from_block, to_block)
        chunks: list[list[ChainEvent]] = []
        async for events in self._iter_chunks(client, from_block, to_block):
            chunks.append(events)
        return chunks

    async def replay(
        self,
        client: ChainClient,
        chain_id: int,
        from_block: int,
        to_block: int,
        source: MutationSource = MutationSource.BACKFILL,
    ) -> BackfillResult:
        """回放闭区间 [from_block, to_block] 内的事件

        Raises:
            RpcUnreachableError / RpcTimeoutError: 查询失败，已回放的分段保留
            ValueError: 区间非法
        """
        _validate_range(from_block, to_block)
        result = BackfillResult(chain_id=chain_id, from_block=from_block, to_block=to_block)

        log.info(
            "backfill_started",
            chain_id=chain_id,
            from_block=from_block,
            to_block=to_block,
            source=source.value,
        )

        async for events in self._iter_chunks(client, from_block, to_block):
            result.chunks += 1
            result.events += len(events)
            for event in events:
                try:
                    outcome = await self._applier.apply(event, source)
                except Exception as e:
                    # 单个事件失败不阻塞同段其余事件
                    result.failed += 1
                    log.error(
                        "backfill_event_failed",
                        chain_id=chain_id,
                        blockchain_id=event.blockchain_id,
                        event_type=event.kind.value,
                        block_number=event.block_number,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                if outcome == ApplyOutcome.APPLIED:
                    result.applied += 1
                elif outcome == ApplyOutcome.NOOP:
                    result.noop += 1
                else:
                    result.missing += 1

        log.info(
            "backfill_completed",
            chain_id=chain_id,
            from_block=from_block,
            to_block=to_block,
            events=result.events,
            applied=result.applied,
            noop=result.noop,
            missing=result.missing,
            failed=result.failed,
            chunks=result.chunks,
        )
        return result

    async def _iter_chunks(self, client: ChainClient, from_block: int, to_block: int):
        current = from_block
        size = self._chunk_blocks
        while current <= to_block:
            end = min(current + size - 1, to_block)
            try:
                events = await asyncio.wait_for(
                    client.get_events(current, end),
                    timeout=self._timeout_s,
                )
            except TimeoutError as e:
                raise RpcTimeoutError(rpc_url=client.rpc_url, original_error=e) from e
            except RpcRangeLimitError:
                if size <= 1:
                    raise
                size = max(size // 2, 1)
                log.warning(
                    "backfill_range_reduced",
                    from_block=current,
                    to_block=end,
                    chunk_blocks=size,
                )
                continue

            yield sorted(events, key=replay_order)
            current = end + 1


def _validate_range(from_block: int, to_block: int) -> None:
    if from_block < 0 or to_block < from_block:
        raise ValueError(f"区块区间非法: [{from_block}, {to_block}]")
