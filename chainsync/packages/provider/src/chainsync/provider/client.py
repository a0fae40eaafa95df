"""Web3ContractClient -- TodoList 合约的 RPC 访问封装

通过 web3.py AsyncWeb3 + AsyncHTTPProvider 访问单个 RPC 节点：
读取区块高度、getTask 快照和区间内的四类合约事件。
连接类错误统一包装为 RpcUnreachableError，供降级与重连逻辑识别。
"""

from typing import Any

import aiohttp
import httpx
import structlog
from chainsync.core.models import ChainConfig, ChainEvent, ChainEventType, OnChainTask
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError
from web3.providers.rpc import AsyncHTTPProvider

from .decoder import decode_event, decode_task_struct
from .exceptions import (
    MalformedEventError,
    RpcError,
    RpcRangeLimitError,
    RpcTimeoutError,
    RpcUnreachableError,
    TaskNotFoundOnChainError,
)

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 连接类异常类型集合（触发 RpcUnreachableError，进而触发降级和重连）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    aiohttp.ClientError,
)

# 节点拒绝过大日志区间时的错误信息片段
_RANGE_LIMIT_MARKERS = (
    "query returned more than",
    "too many",
    "block range",
    "range is too large",
    "exceed maximum block range",
    "limit exceeded",
)

# getTask revert 中表示任务不存在的信息片段
_NOT_FOUND_MARKERS = ("task not found", "task does not exist", "invalid task")


def _is_connection_error(e: Exception) -> bool:
    """判断异常是否为连接类错误（节点不可达）"""
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return True
    # web3 的连接类异常
    error_name = type(e).__name__
    return error_name in ("ProviderConnectionError", "TimeExhausted")


def _is_range_limit_error(e: Exception) -> bool:
    msg = str(e).lower()
    return any(marker in msg for marker in _RANGE_LIMIT_MARKERS)


def _event_signature(event_abi: dict[str, Any]) -> str:
    types = ",".join(item["type"] for item in event_abi.get("inputs", []))
    return f"{event_abi['name']}({types})"


class Web3ContractClient:
    """单个 RPC 节点上的合约客户端

    每次（重）连接新建实例，旧实例由 ConnectionSupervisor 显式 close。
    """

    def __init__(self, chain: ChainConfig, rpc_url: str | None = None, timeout_s: int = 30) -> None:
        """初始化合约客户端

        Args:
            chain: 链配置（合约地址 + ABI）
            rpc_url: 覆盖使用的 RPC 地址，默认 chain.rpc_url
            timeout_s: HTTP 请求超时（秒）
        """
        self._chain_id = chain.chain_id
        self._rpc_url = rpc_url or chain.rpc_url
        self._w3 = AsyncWeb3(
            AsyncHTTPProvider(
                self._rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout_s)},
            )
        )
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(chain.contract_address),
            abi=chain.abi,
        )
        # topic0 -> 事件名，只关注四类任务事件
        self._topics: dict[str, str] = {}
        known = {kind.value for kind in ChainEventType}
        for item in chain.abi:
            if item.get("type") == "event" and item.get("name") in known:
                topic = Web3.to_hex(Web3.keccak(text=_event_signature(item)))
                self._topics[topic] = item["name"]

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def get_block_number(self) -> int:
        """当前链高"""
        try:
            return await self._w3.eth.block_number
        except Exception as e:
            raise self._wrap(e, "eth_blockNumber") from e

    async def get_chain_id(self) -> int:
        """节点报告的链 ID"""
        try:
            return await self._w3.eth.chain_id
        except Exception as e:
            raise self._wrap(e, "eth_chainId") from e

    async def get_task(self, blockchain_id: str) -> OnChainTask:
        """读取合约 getTask 快照

        Raises:
            TaskNotFoundOnChainError: 合约中不存在该任务
            RpcUnreachableError: 节点不可达
        """
        try:
            raw = await self._contract.functions.getTask(int(blockchain_id)).call()
        except ContractLogicError as e:
            msg = str(e).lower()
            if any(marker in msg for marker in _NOT_FOUND_MARKERS):
                raise TaskNotFoundOnChainError(self._chain_id, blockchain_id) from e
            raise RpcError(f"getTask 调用失败: {e}", recoverable=False) from e
        except Exception as e:
            raise self._wrap(e, "getTask") from e
        return decode_task_struct(raw)

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        """查询闭区间 [from_block, to_block] 内的四类任务事件

        无法解码的日志记录 warning 后丢弃。返回顺序与节点一致，
        回放排序由 BackfillEngine 负责。

        Raises:
            RpcRangeLimitError: 节点拒绝该区间
            RpcUnreachableError: 节点不可达
        """
        try:
            raw_logs = await self._w3.eth.get_logs(
                {
                    "fromBlock": from_block,
                    "toBlock": to_block,
                    "address": self._contract.address,
                    "topics": [list(self._topics)],
                }
            )
        except Exception as e:
            if not _is_connection_error(e) and _is_range_limit_error(e):
                raise RpcRangeLimitError(from_block, to_block, e) from e
            raise self._wrap(e, "eth_getLogs") from e

        events: list[ChainEvent] = []
        for raw in raw_logs:
            try:
                events.append(self._decode_log(raw))
            except MalformedEventError as e:
                log.warning(
                    "malformed_event_dropped",
                    chain_id=self._chain_id,
                    block_number=raw.get("blockNumber"),
                    error=str(e),
                )
        return events

    def _decode_log(self, raw: Any) -> ChainEvent:
        topics = raw.get("topics") or []
        topic0 = Web3.to_hex(topics[0]) if topics else ""
        name = self._topics.get(topic0)
        if name is None:
            raise MalformedEventError(f"未知事件 topic: {topic0}")
        try:
            event_data = getattr(self._contract.events, name)().process_log(raw)
        except Exception as e:
            # ABI 不匹配的日志无法解码
            raise MalformedEventError(f"{name} 日志解码失败: {e}") from e
        return decode_event(self._chain_id, event_data)

    async def health_check(self) -> bool:
        """检查 RPC 节点可达性

        发送 eth_blockNumber JSON-RPC 请求。

        Returns:
            True 如果节点正常响应，False 如果不可达或异常

        注意: 此方法不抛出异常，超时设置为 5 秒。
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.post(
                    self._rpc_url,
                    json=payload,
                    timeout=HEALTH_CHECK_TIMEOUT_S,
                )
                return resp.status_code == 200 and "result" in resp.json()
        except Exception as e:
            log.warning(
                "rpc_health_check_failed",
                chain_id=self._chain_id,
                rpc_url=self._rpc_url,
                error=str(e),
            )
            return False

    async def close(self) -> None:
        """释放底层 HTTP 会话"""
        await self._w3.provider.disconnect()

    def _wrap(self, e: Exception, method: str) -> Exception:
        """区分连接类错误与业务错误"""
        log.debug(
            "rpc_call_failed",
            chain_id=self._chain_id,
            method=method,
            error=str(e),
            error_type=type(e).__name__,
        )
        if isinstance(e, TimeoutError):
            return RpcTimeoutError(rpc_url=self._rpc_url, original_error=e)
        if _is_connection_error(e):
            return RpcUnreachableError(rpc_url=self._rpc_url, original_error=e)
        return RpcError(message=f"RPC 调用失败 ({method}): {e}", recoverable=True)
