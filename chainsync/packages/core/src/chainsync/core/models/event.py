"""链上事件与同步日志 Domain Model

ChainEvent 是在 provider 边界一次性解码的带标签变体，
MutationApplier 按 kind 穷举匹配，不再信任位置参数。

SyncRecord 是 sync_events 表的记录：append-only，
record_id 使用 ULID 格式，时间有序。
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..config import DESCRIPTION_MAX_LENGTH
from .enums import ChainEventType, MutationSource, RecordType


class _ChainEventBase(BaseModel):
    """四类合约事件的公共字段"""

    model_config = ConfigDict(frozen=True)

    chain_id: int = Field(description="来源链 ID")
    blockchain_id: str = Field(description="合约内的 taskId（十进制字符串）")
    owner: str = Field(description="事件中的所有者地址")
    timestamp: datetime = Field(description="合约记录的时间戳")
    block_number: int = Field(ge=0, description="所在区块")
    log_index: int = Field(default=0, ge=0, description="区块内日志序号")
    transaction_hash: str = Field(default="", description="交易哈希")

    @property
    def key(self) -> tuple[int, str]:
        return self.chain_id, self.blockchain_id

    @property
    def idempotency_key(self) -> str | None:
        """同一条日志重复投递时保持不变的键"""
        if not self.transaction_hash:
            return None
        return f"{self.chain_id}:{self.transaction_hash}:{self.log_index}"


class TaskCreatedEvent(_ChainEventBase):
    kind: Literal[ChainEventType.CREATED] = ChainEventType.CREATED
    description: str = Field(max_length=DESCRIPTION_MAX_LENGTH)


class TaskCompletedEvent(_ChainEventBase):
    kind: Literal[ChainEventType.COMPLETED] = ChainEventType.COMPLETED


class TaskDeletedEvent(_ChainEventBase):
    kind: Literal[ChainEventType.DELETED] = ChainEventType.DELETED


class TaskRestoredEvent(_ChainEventBase):
    kind: Literal[ChainEventType.RESTORED] = ChainEventType.RESTORED


ChainEvent = Annotated[
    TaskCreatedEvent | TaskCompletedEvent | TaskDeletedEvent | TaskRestoredEvent,
    Field(discriminator="kind"),
]


class SyncRecord(BaseModel):
    """同步日志记录 -- 每次成功变更追加一条

    source 区分实时事件、回放、漂移修正与人工同步，
    链上事件来源的记录带 idempotency_key，重复投递只记录一次。
    """

    record_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    chain_id: int
    blockchain_id: str
    ts: datetime = Field(description="写入时间")
    type: RecordType
    source: MutationSource
    block_number: int | None = Field(default=None)
    transaction_hash: str = Field(default="")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
    idempotency_key: str | None = Field(
        default=None,
        description="幂等键，链上事件来源必填",
    )
