"""ReorgDetector -- 区块高度单调性检测

状态机: TRACKING -> REORG_SUSPECTED -> RESYNCING -> TRACKING

新区块号不大于 last_processed_block 时怀疑发生重组，
以 safe = current - confirmations 为回放起点，
若 last_processed_block > safe 则回放 [safe, current]。
不论是否回放，游标都回落到 current，后续区块按新高度判断。
同一高度的区块替换（高度不变、哈希变化）不在检测范围内。
"""

import structlog
from chainsync.core.models import ChainCursor, MutationSource, ReorgState, validate_transition
from chainsync.provider import ChainClient

from .backfill import BackfillEngine

log = structlog.get_logger()


class ReorgDetector:
    """单条链的重组检测器，持有该链的 ChainCursor"""

    def __init__(self, cursor: ChainCursor, backfill: BackfillEngine) -> None:
        self._cursor = cursor
        self._backfill = backfill

    @property
    def state(self) -> ReorgState:
        return self._cursor.reorg_state

    async def on_block(self, client: ChainClient, block_number: int) -> tuple[int, int] | None:
        """处理一次新区块通知

        Returns:
            触发回放时返回回放区间 (safe, current)，否则 None

        Raises:
            RpcUnreachableError: 回放查询失败（状态已回到 TRACKING）
        """
        cursor = self._cursor
        last = cursor.last_processed_block

        if last is None or block_number > last:
            cursor.last_processed_block = block_number
            return None

        self._transition(ReorgState.REORG_SUSPECTED)
        safe = block_number - cursor.confirmations_required
        log.warning(
            "reorg_suspected",
            chain_id=cursor.chain_id,
            block_number=block_number,
            last_processed_block=last,
            safe_block=safe,
        )

        if safe < 0:
            # 链高不足确认深度，无法确定安全起点
            log.info("reorg_resync_skipped", chain_id=cursor.chain_id, safe_block=safe)
            cursor.last_processed_block = block_number
            self._transition(ReorgState.TRACKING)
            return None

        if last <= safe:
            cursor.last_processed_block = block_number
            self._transition(ReorgState.TRACKING)
            return None

        self._transition(ReorgState.RESYNCING)
        try:
            await self._backfill.replay(
                client,
                cursor.chain_id,
                safe,
                block_number,
                source=MutationSource.BACKFILL,
            )
        except Exception:
            self._transition(ReorgState.TRACKING)
            raise

        cursor.last_processed_block = block_number
        self._transition(ReorgState.TRACKING)
        log.info(
            "reorg_resync_completed",
            chain_id=cursor.chain_id,
            from_block=safe,
            to_block=block_number,
        )
        return safe, block_number

    def _transition(self, to_state: ReorgState) -> None:
        from_state = self._cursor.reorg_state
        if not validate_transition(from_state, to_state):
            raise RuntimeError(f"非法重组状态流转: {from_state} -> {to_state}")
        self._cursor.reorg_state = to_state
