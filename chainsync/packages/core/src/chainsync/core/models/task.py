"""Task Domain Model

tasks 表是链上状态的缓存视图，
唯一标识为 (chain_id, blockchain_id)，所有变更经由 MutationApplier 写入。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ..config import DESCRIPTION_MAX_LENGTH
from .enums import SyncStatus


class Task(BaseModel):
    """缓存的 Task 记录

    (chain_id, blockchain_id) 是所有变更的幂等键。
    只做软删除，物理清理属于存储层的保留策略。
    """

    chain_id: int = Field(description="链 ID")
    blockchain_id: str = Field(description="合约内的 taskId（十进制字符串）")
    owner: str = Field(description="所有者地址（小写）")
    description: str = Field(max_length=DESCRIPTION_MAX_LENGTH, description="任务描述")
    completed: bool = Field(default=False)
    deleted: bool = Field(default=False)
    created_at: datetime = Field(description="链上创建时间")
    completed_at: datetime | None = Field(default=None)
    deleted_at: datetime | None = Field(default=None)
    transaction_hash: str = Field(
        default="",
        description="创建交易哈希，直接读取合约重建时为空",
    )
    sync_status: SyncStatus = Field(default=SyncStatus.SYNCED)
    last_synced_at: datetime = Field(description="最近一次成功同步时间")

    @field_validator("owner")
    @classmethod
    def _lowercase_owner(cls, value: str) -> str:
        return value.lower()

    @property
    def key(self) -> tuple[int, str]:
        return self.chain_id, self.blockchain_id


class OnChainTask(BaseModel):
    """合约 getTask 读取结果（权威状态）"""

    owner: str
    description: str
    completed: bool = False
    deleted: bool = False
    created_at: datetime
    completed_at: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("owner")
    @classmethod
    def _lowercase_owner(cls, value: str) -> str:
        return value.lower()


class TaskVerification(BaseModel):
    """缓存与链上状态的比对结果"""

    chain_id: int
    blockchain_id: str
    is_valid: bool
    cached: dict | None = Field(default=None, description="缓存视图")
    chain: dict | None = Field(default=None, description="链上视图")
    error: str = Field(default="", description="链上无法解析时的说明")
