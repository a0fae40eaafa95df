"""Web3ContractClient 单元测试

不连接真实节点：替换底层 web3 对象，验证 topic 映射、
错误分类（不可达 / 超时 / 区间限制 / revert）与日志解码丢弃策略。
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from chainsync.core.models import TaskCompletedEvent
from chainsync.provider.client import (
    Web3ContractClient,
    _is_connection_error,
    _is_range_limit_error,
)
from chainsync.provider.exceptions import (
    RpcError,
    RpcRangeLimitError,
    RpcTimeoutError,
    RpcUnreachableError,
    TaskNotFoundOnChainError,
)
from web3 import Web3
from web3.exceptions import ContractLogicError

_COMPLETED_TOPIC = Web3.to_hex(Web3.keccak(text="TaskCompleted(uint256,address,uint256)"))


@pytest.fixture
def client(abi_chain) -> Web3ContractClient:
    client = Web3ContractClient(abi_chain, timeout_s=5)
    client._w3 = MagicMock()
    client._w3.eth.get_logs = AsyncMock(return_value=[])
    return client


class TestErrorClassification:
    """异常分类函数"""

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionRefusedError(),
            aiohttp.ClientConnectionError("reset"),
            OSError("network unreachable"),
        ],
    )
    def test_connection_errors(self, error):
        assert _is_connection_error(error) is True

    def test_value_error_is_not_connection_error(self):
        assert _is_connection_error(ValueError("execution reverted")) is False

    @pytest.mark.parametrize(
        "message",
        [
            "query returned more than 10000 results",
            "eth_getLogs block range is too large",
            "exceed maximum block range: 5000",
        ],
    )
    def test_range_limit_messages(self, message):
        assert _is_range_limit_error(ValueError(message)) is True

    def test_other_message(self):
        assert _is_range_limit_error(ValueError("execution reverted")) is False


class TestTopicMap:
    def test_only_task_events_tracked(self, abi_chain):
        client = Web3ContractClient(abi_chain)
        assert sorted(client._topics.values()) == [
            "TaskCompleted",
            "TaskCreated",
            "TaskDeleted",
            "TaskRestored",
        ]
        assert client._topics[_COMPLETED_TOPIC] == "TaskCompleted"
        assert client.rpc_url == "http://127.0.0.1:8545"

    def test_rpc_url_override(self, abi_chain):
        client = Web3ContractClient(abi_chain, rpc_url="http://backup:8545")
        assert client.rpc_url == "http://backup:8545"


class TestGetEvents:
    """get_events 错误分类与解码"""

    async def test_range_limit(self, client):
        client._w3.eth.get_logs.side_effect = ValueError(
            {"code": -32005, "message": "query returned more than 10000 results"}
        )
        with pytest.raises(RpcRangeLimitError) as exc_info:
            await client.get_events(1, 50_000)
        assert (exc_info.value.from_block, exc_info.value.to_block) == (1, 50_000)

    async def test_connection_error(self, client):
        client._w3.eth.get_logs.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(RpcUnreachableError) as exc_info:
            await client.get_events(1, 10)
        assert exc_info.value.rpc_url == "http://127.0.0.1:8545"

    async def test_timeout(self, client):
        client._w3.eth.get_logs.side_effect = asyncio.TimeoutError()
        with pytest.raises(RpcTimeoutError):
            await client.get_events(1, 10)

    async def test_other_error_is_recoverable_rpc_error(self, client):
        client._w3.eth.get_logs.side_effect = ValueError("invalid params")
        with pytest.raises(RpcError) as exc_info:
            await client.get_events(1, 10)
        assert not isinstance(exc_info.value, RpcUnreachableError)
        assert exc_info.value.recoverable is True

    async def test_queries_known_topics(self, client):
        await client.get_events(5, 9)
        params = client._w3.eth.get_logs.call_args.args[0]
        assert params["fromBlock"] == 5
        assert params["toBlock"] == 9
        assert _COMPLETED_TOPIC in params["topics"][0]

    async def test_decodes_and_drops_malformed(self, client):
        good = {"topics": [bytes.fromhex(_COMPLETED_TOPIC[2:])], "blockNumber": 7}
        unknown = {"topics": [bytes(32)], "blockNumber": 8}
        client._w3.eth.get_logs.return_value = [good, unknown]

        processed = {
            "event": "TaskCompleted",
            "args": {"taskId": 4, "owner": "0xabc", "timestamp": 2000},
            "blockNumber": 7,
            "logIndex": 0,
            "transactionHash": "0x01",
        }
        client._contract = MagicMock()
        client._contract.events.TaskCompleted.return_value.process_log.return_value = processed

        events = await client.get_events(1, 10)

        assert len(events) == 1
        assert isinstance(events[0], TaskCompletedEvent)
        assert events[0].blockchain_id == "4"
        assert events[0].block_number == 7

    async def test_undecodable_log_dropped(self, client):
        good_topic = {"topics": [bytes.fromhex(_COMPLETED_TOPIC[2:])], "blockNumber": 7}
        client._w3.eth.get_logs.return_value = [good_topic]
        client._contract = MagicMock()
        client._contract.events.TaskCompleted.return_value.process_log.side_effect = ValueError(
            "abi mismatch"
        )
        assert await client.get_events(1, 10) == []


class TestGetTask:
    """getTask revert 分类"""

    def _stub_call(self, client, **kwargs):
        client._contract = MagicMock()
        client._contract.functions.getTask.return_value.call = AsyncMock(**kwargs)

    async def test_snapshot_decoded(self, client):
        self._stub_call(client, return_value=(3, "0xABC", "Buy milk", False, 1000, 0, False, 0))
        task = await client.get_task("3")
        assert task.owner == "0xabc"
        client._contract.functions.getTask.assert_called_once_with(3)

    async def test_not_found_revert(self, client):
        self._stub_call(client, side_effect=ContractLogicError("execution reverted: Task not found"))
        with pytest.raises(TaskNotFoundOnChainError):
            await client.get_task("404")

    async def test_other_revert_not_recoverable(self, client):
        self._stub_call(client, side_effect=ContractLogicError("execution reverted: paused"))
        with pytest.raises(RpcError) as exc_info:
            await client.get_task("1")
        assert exc_info.value.recoverable is False
        assert not isinstance(exc_info.value, TaskNotFoundOnChainError)

    async def test_unreachable(self, client):
        self._stub_call(client, side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(RpcUnreachableError):
            await client.get_task("1")
