"""FallbackRpcClient -- 主备 RPC 切换

惰性恢复策略：每次调用时先尝试 primary，节点不可达时切换到 fallback。
不维护显式的"降级状态"标记，primary 恢复后自动回到 primary。
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from chainsync.core.models import ChainEvent, OnChainTask

from .exceptions import RpcUnreachableError
from .protocols import ChainClient

log = structlog.get_logger()


class FallbackRpcClient:
    """主备 RPC 客户端，对调用方透明

    只有 RpcUnreachableError（含超时）触发切换；
    合约 revert、区间限制等业务错误由 primary 直接抛出。
    """

    def __init__(self, primary: ChainClient, fallback: ChainClient | None = None) -> None:
        """初始化主备客户端

        Args:
            primary: 主 RPC 客户端
            fallback: 备用 RPC 客户端，None 表示无降级
        """
        self._primary = primary
        self._fallback = fallback

    @property
    def rpc_url(self) -> str:
        return self._primary.rpc_url

    async def get_block_number(self) -> int:
        return await self._call("get_block_number", lambda c: c.get_block_number())

    async def get_chain_id(self) -> int:
        return await self._call("get_chain_id", lambda c: c.get_chain_id())

    async def get_task(self, blockchain_id: str) -> OnChainTask:
        return await self._call("get_task", lambda c: c.get_task(blockchain_id))

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        return await self._call(
            "get_events",
            lambda c: c.get_events(from_block, to_block),
        )

    async def health_check(self) -> bool:
        if await self._primary.health_check():
            return True
        return self._fallback is not None and await self._fallback.health_check()

    async def close(self) -> None:
        await self._primary.close()
        if self._fallback is not None:
            await self._fallback.close()

    async def _call(
        self,
        method: str,
        invoke: Callable[[ChainClient], Awaitable[Any]],
    ) -> Any:
        """带降级的调用

        Raises:
            RpcUnreachableError: primary 和 fallback 均不可达
        """
        try:
            return await invoke(self._primary)
        except RpcUnreachableError as primary_error:
            if self._fallback is None:
                raise
            log.warning(
                "primary_rpc_failed_attempting_fallback",
                method=method,
                rpc_url=primary_error.rpc_url,
                error=str(primary_error.original_error),
            )

        try:
            result = await invoke(self._fallback)
        except RpcUnreachableError as fallback_error:
            log.error(
                "both_primary_and_fallback_rpc_failed",
                method=method,
                fallback_rpc_url=fallback_error.rpc_url,
                error=str(fallback_error.original_error),
            )
            raise

        log.info("fallback_rpc_activated", method=method, rpc_url=self._fallback.rpc_url)
        return result
