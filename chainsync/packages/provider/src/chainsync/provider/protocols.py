"""ChainClient Protocol 接口定义

Web3ContractClient、FallbackRpcClient 以及测试用的内存假链
都满足同一组方法，ConnectionSupervisor 只依赖此接口。
"""

from typing import Protocol

from chainsync.core.models import ChainEvent, OnChainTask


class ChainClient(Protocol):
    """单条链的合约访问接口"""

    @property
    def rpc_url(self) -> str:
        """当前使用的 RPC 地址"""
        ...

    async def get_block_number(self) -> int:
        """当前链高"""
        ...

    async def get_chain_id(self) -> int:
        """节点报告的链 ID"""
        ...

    async def get_task(self, blockchain_id: str) -> OnChainTask:
        """读取 getTask 快照，不存在时抛 TaskNotFoundOnChainError"""
        ...

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        """查询闭区间内的四类任务事件"""
        ...

    async def health_check(self) -> bool:
        """节点可达性检查，不抛异常"""
        ...

    async def close(self) -> None:
        """释放底层连接"""
        ...
