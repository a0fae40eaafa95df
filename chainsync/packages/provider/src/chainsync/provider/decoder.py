"""事件解码 -- web3 日志到 ChainEvent 的唯一入口

所有字段在此处校验一次，之后各组件只处理带标签的 ChainEvent，
不再按位置读取事件参数。
"""

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from chainsync.core.models import (
    ChainEvent,
    ChainEventType,
    OnChainTask,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskRestoredEvent,
)
from pydantic import ValidationError
from web3 import Web3

from .exceptions import MalformedEventError

_EVENT_CLASSES = {
    ChainEventType.CREATED: TaskCreatedEvent,
    ChainEventType.COMPLETED: TaskCompletedEvent,
    ChainEventType.DELETED: TaskDeletedEvent,
    ChainEventType.RESTORED: TaskRestoredEvent,
}

# getTask 返回结构体的字段顺序（与合约 Task struct 一致）
TASK_STRUCT_FIELDS: tuple[str, ...] = (
    "id",
    "owner",
    "description",
    "completed",
    "createdAt",
    "completedAt",
    "deleted",
    "deletedAt",
)


def to_datetime(value: Any) -> datetime:
    """合约秒级时间戳转 UTC datetime"""
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value), tz=UTC)


def _optional_datetime(value: Any) -> datetime | None:
    # 合约用 0 表示未设置
    if value in (None, 0):
        return None
    return to_datetime(value)


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes | bytearray):
        return Web3.to_hex(value)
    return str(value)


def decode_event(chain_id: int, log_entry: Mapping[str, Any]) -> ChainEvent:
    """把 web3 解码后的事件（EventData）转换为 ChainEvent

    Args:
        chain_id: 来源链 ID
        log_entry: 形如 {"event", "args", "blockNumber", "logIndex", "transactionHash"}

    Raises:
        MalformedEventError: 事件名未知、参数缺失或类型不符
    """
    name = log_entry.get("event")
    try:
        kind = ChainEventType(name)
    except ValueError as exc:
        raise MalformedEventError(f"未知事件类型: {name!r}") from exc

    args = log_entry.get("args") or {}
    try:
        fields: dict[str, Any] = {
            "chain_id": chain_id,
            "blockchain_id": str(int(args["taskId"])),
            "owner": str(args["owner"]),
            "timestamp": to_datetime(args["timestamp"]),
            "block_number": int(log_entry["blockNumber"]),
            "log_index": int(log_entry.get("logIndex") or 0),
            "transaction_hash": _hex(log_entry.get("transactionHash")),
        }
        if kind == ChainEventType.CREATED:
            fields["description"] = str(args["description"])
        return _EVENT_CLASSES[kind](**fields)
    except (KeyError, TypeError, ValueError, OverflowError, ValidationError) as exc:
        raise MalformedEventError(f"{name} 事件参数无效: {exc}") from exc


def decode_task_struct(raw: Sequence[Any] | Mapping[str, Any]) -> OnChainTask:
    """把 getTask 返回的结构体（元组或映射）转换为 OnChainTask

    Raises:
        MalformedEventError: 结构体字段缺失或类型不符
    """
    if isinstance(raw, Mapping):
        data = dict(raw)
    else:
        if len(raw) != len(TASK_STRUCT_FIELDS):
            raise MalformedEventError(f"getTask 返回字段数不符: {len(raw)}")
        data = dict(zip(TASK_STRUCT_FIELDS, raw, strict=True))

    try:
        return OnChainTask(
            owner=str(data["owner"]),
            description=str(data["description"]),
            completed=bool(data["completed"]),
            deleted=bool(data["deleted"]),
            created_at=to_datetime(data["createdAt"]),
            completed_at=_optional_datetime(data.get("completedAt")),
            deleted_at=_optional_datetime(data.get("deletedAt")),
        )
    except (KeyError, TypeError, ValueError, OverflowError, ValidationError) as exc:
        raise MalformedEventError(f"getTask 返回值无效: {exc}") from exc
