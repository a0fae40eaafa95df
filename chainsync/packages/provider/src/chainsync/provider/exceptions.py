"""Provider 异常体系

RPC 访问与事件解码的错误分类，
连接类错误由 ConnectionSupervisor 的退避重连处理。
"""


class RpcError(Exception):
    """Provider 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或重连恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class RpcUnreachableError(RpcError):
    """RPC 节点不可达（连接失败、超时、DNS 解析失败等）

    此异常触发 FallbackRpcClient 的切换逻辑和 ConnectionSupervisor 的重连。
    """

    def __init__(self, rpc_url: str, original_error: Exception) -> None:
        """
        Args:
            rpc_url: 尝试连接的 RPC 地址
            original_error: 原始异常
        """
        super().__init__(
            f"RPC 节点不可达: {rpc_url} -- {original_error}",
            recoverable=True,
        )
        self.rpc_url = rpc_url
        self.original_error = original_error


class RpcTimeoutError(RpcUnreachableError):
    """单次 RPC 查询超时，按瞬时连接错误处理"""


class RpcRangeLimitError(RpcError):
    """节点拒绝过大的日志查询区间

    BackfillEngine 收到后把分段大小减半重试。
    """

    def __init__(self, from_block: int, to_block: int, original_error: Exception) -> None:
        super().__init__(
            f"日志查询区间过大: [{from_block}, {to_block}] -- {original_error}",
            recoverable=True,
        )
        self.from_block = from_block
        self.to_block = to_block
        self.original_error = original_error


class TaskNotFoundOnChainError(RpcError):
    """合约中不存在该 taskId（getTask revert）

    DriftReconciler 跳过此类任务，不视为错误。
    """

    def __init__(self, chain_id: int, blockchain_id: str) -> None:
        super().__init__(
            f"链上任务不存在: chain_id={chain_id} task_id={blockchain_id}",
            recoverable=False,
        )
        self.chain_id = chain_id
        self.blockchain_id = blockchain_id


class MalformedEventError(RpcError):
    """事件 payload 无法解码为 ChainEvent

    在解码边界记录并丢弃，不影响其他事件。
    """

    def __init__(self, message: str = "事件 payload 格式无效") -> None:
        super().__init__(message, recoverable=False)
