"""Provider 包测试 fixtures"""

import pytest
from chainsync.core.models import ChainConfig

# TodoListV2 中四类任务事件的 ABI 片段
TASK_EVENTS_ABI = [
    {
        "type": "event",
        "name": "TaskCreated",
        "anonymous": False,
        "inputs": [
            {"name": "taskId", "type": "uint256", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "description", "type": "string", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
    *(
        {
            "type": "event",
            "name": name,
            "anonymous": False,
            "inputs": [
                {"name": "taskId", "type": "uint256", "indexed": True},
                {"name": "owner", "type": "address", "indexed": True},
                {"name": "timestamp", "type": "uint256", "indexed": False},
            ],
        }
        for name in ("TaskCompleted", "TaskDeleted", "TaskRestored")
    ),
    {
        "type": "event",
        "name": "ContractPaused",
        "anonymous": False,
        "inputs": [
            {"name": "account", "type": "address", "indexed": True},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]


@pytest.fixture
def abi_chain() -> ChainConfig:
    """带任务事件 ABI 的本地链配置"""
    return ChainConfig(
        key="localhost",
        name="localhost",
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
        contract_address="0x5fbdb2315678afecb367f032d93f642f64180aa3",
        abi=TASK_EVENTS_ABI,
        confirmations=1,
        block_time_s=1.0,
    )


@pytest.fixture
def event_data() -> dict:
    """web3 process_log 解码后的 TaskCreated 事件"""
    return {
        "event": "TaskCreated",
        "args": {
            "taskId": 1,
            "owner": "0xAbC0000000000000000000000000000000000001",
            "description": "Buy milk",
            "timestamp": 1000,
        },
        "blockNumber": 12,
        "logIndex": 3,
        "transactionHash": bytes.fromhex("ab" * 32),
    }
