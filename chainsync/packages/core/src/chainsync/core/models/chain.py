"""Chain Registry 与 Chain Cursor Domain Model"""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ReorgState


class ChainConfig(BaseModel):
    """单条链的静态配置"""

    key: str = Field(description="网络 key（如 localhost, sepolia）")
    name: str = Field(description="显示名称")
    chain_id: int
    rpc_url: str = Field(description="主 RPC 地址")
    rpc_backup_url: str = Field(default="", description="备用 RPC 地址，空表示无故障转移")
    contract_address: str
    abi: list[dict[str, Any]] = Field(default_factory=list, description="合约 ABI")
    confirmations: int = Field(ge=0, description="确认块数")
    block_time_s: float = Field(gt=0, description="平均出块时间（秒）")


class ChainRegistry(BaseModel):
    """已通过配置校验的链集合"""

    chains: list[ChainConfig] = Field(default_factory=list)
    default_network: str = Field(default="localhost")

    def get(self, chain_id: int) -> ChainConfig | None:
        for chain in self.chains:
            if chain.chain_id == chain_id:
                return chain
        return None

    def chain_ids(self) -> list[int]:
        return [chain.chain_id for chain in self.chains]


class ChainCursor(BaseModel):
    """单条链的处理进度

    连接建立时初始化为当前链高，每个新区块推进，
    重连时重置为新的链高（不归零），供重组检测使用。
    """

    chain_id: int
    last_processed_block: int | None = Field(default=None)
    reconnect_attempts: int = Field(default=0, ge=0)
    listener_active: bool = Field(default=False)
    confirmations_required: int = Field(ge=0)
    reorg_state: ReorgState = Field(default=ReorgState.TRACKING)
