"""全局 pytest 配置 -- 临时 SQLite Store + 内存假链 fixture"""

import hashlib
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from chainsync.core.models import (
    ChainConfig,
    ChainEvent,
    ChainEventType,
    OnChainTask,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskRestoredEvent,
)
from chainsync.core.store import StoreGroup, create_store_group
from chainsync.provider import (
    RpcError,
    RpcRangeLimitError,
    RpcUnreachableError,
    TaskNotFoundOnChainError,
)

_EVENT_CLASSES = {
    ChainEventType.CREATED: TaskCreatedEvent,
    ChainEventType.COMPLETED: TaskCompletedEvent,
    ChainEventType.DELETED: TaskDeletedEvent,
    ChainEventType.RESTORED: TaskRestoredEvent,
}


def _default_tx_hash(kind: ChainEventType, task_id, block_number: int, log_index: int) -> str:
    seed = f"{kind.value}:{task_id}:{block_number}:{log_index}"
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()


def build_event(
    kind: ChainEventType,
    task_id: int | str = 1,
    block_number: int = 1,
    timestamp: int = 1000,
    log_index: int = 0,
    owner: str = "0xabc",
    description: str = "Buy milk",
    chain_id: int = 31337,
    transaction_hash: str | None = None,
) -> ChainEvent:
    """构造测试用链上事件，交易哈希缺省时按 (类型, 任务, 区块, 日志序号) 生成，不同事件互不冲突"""
    fields = {
        "chain_id": chain_id,
        "blockchain_id": str(task_id),
        "owner": owner,
        "timestamp": datetime.fromtimestamp(timestamp, tz=UTC),
        "block_number": block_number,
        "log_index": log_index,
        "transaction_hash": transaction_hash
        if transaction_hash is not None
        else _default_tx_hash(kind, task_id, block_number, log_index),
    }
    if kind == ChainEventType.CREATED:
        fields["description"] = description
    return _EVENT_CLASSES[kind](**fields)


class FakeChain:
    """内存中的脚本化链状态，同一条链的所有客户端共享"""

    def __init__(self, chain_id: int = 31337) -> None:
        self.chain_id = chain_id
        self.head = 0
        self.online = True
        self.events: list[ChainEvent] = []
        self.tasks: dict[str, OnChainTask] = {}
        self.broken_tasks: set[str] = set()
        self.range_limit: int | None = None
        self.event_queries: list[tuple[int, int]] = []
        self.task_reads: list[str] = []
        self.clients: list["FakeChainClient"] = []

    def emit(self, event: ChainEvent) -> None:
        self.events.append(event)
        self.head = max(self.head, event.block_number)

    def client(self, chain: ChainConfig | None = None) -> "FakeChainClient":
        """ChainClient 工厂"""
        client = FakeChainClient(self)
        self.clients.append(client)
        return client


class FakeChainClient:
    """满足 ChainClient 接口的内存客户端"""

    def __init__(self, chain: FakeChain) -> None:
        self._chain = chain
        self.closed = False

    @property
    def rpc_url(self) -> str:
        return f"fake://{self._chain.chain_id}"

    def _check_online(self) -> None:
        if self.closed or not self._chain.online:
            raise RpcUnreachableError(self.rpc_url, ConnectionError("connection refused"))

    async def get_block_number(self) -> int:
        self._check_online()
        return self._chain.head

    async def get_chain_id(self) -> int:
        self._check_online()
        return self._chain.chain_id

    async def get_task(self, blockchain_id: str) -> OnChainTask:
        self._check_online()
        self._chain.task_reads.append(blockchain_id)
        if blockchain_id in self._chain.broken_tasks:
            raise RpcError(f"getTask 调用失败: {blockchain_id}", recoverable=False)
        if blockchain_id not in self._chain.tasks:
            raise TaskNotFoundOnChainError(self._chain.chain_id, blockchain_id)
        return self._chain.tasks[blockchain_id]

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        self._check_online()
        limit = self._chain.range_limit
        if limit is not None and to_block - from_block + 1 > limit:
            raise RpcRangeLimitError(
                from_block,
                to_block,
                ValueError("query returned more than 10000 results"),
            )
        self._chain.event_queries.append((from_block, to_block))
        return [e for e in self._chain.events if from_block <= e.block_number <= to_block]

    async def health_check(self) -> bool:
        return self._chain.online and not self.closed

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_event() -> Callable[..., ChainEvent]:
    """链上事件构造器"""
    return build_event


@pytest.fixture
def fake_chain() -> FakeChain:
    """Hardhat 本地链（31337）的内存替身"""
    return FakeChain(chain_id=31337)


@pytest.fixture
def make_fake_chain() -> Callable[[int], FakeChain]:
    return FakeChain


@pytest.fixture
def chain_config() -> ChainConfig:
    """31337 的链配置，确认深度 1"""
    return ChainConfig(
        key="localhost",
        name="localhost",
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
        contract_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        abi=[],
        confirmations=1,
        block_time_s=1.0,
    )


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()
