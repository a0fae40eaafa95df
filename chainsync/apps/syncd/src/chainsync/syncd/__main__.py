"""CLI 入口模块 -- python -m chainsync.syncd <command>

支持的命令：
  run                               启动多链同步守护进程
  resync <chainId> <from> [to]      回放区块区间内的事件（缺省 to 时只回放 from）
  sync-task <chainId> <taskId>      从合约直接同步单个任务
  network-info                      查看各链连接信息
  health                            检查各链 RPC 可达性与同步记录统计
"""

import asyncio
import json
import sys

from chainsync.provider import RpcError

from .logging_config import setup_logging
from .main import lifespan, run_daemon
from .services.sync_service import ChainUnavailableError

_USAGE = """用法: python -m chainsync.syncd <command>
命令:
  run                               启动多链同步守护进程
  resync <chainId> <from> [to]      回放区块区间内的事件（缺省 to 时只回放 from）
  sync-task <chainId> <taskId>      从合约直接同步单个任务
  network-info                      查看各链连接信息"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]

    try:
        if command == "run":
            asyncio.run(run_daemon())
        elif command == "resync" and len(args) in (2, 3):
            to_block = int(args[2]) if len(args) == 3 else None
            asyncio.run(resync(int(args[0]), int(args[1]), to_block))
        elif command == "sync-task" and len(args) == 2:
            asyncio.run(sync_task(int(args[0]), args[1]))
        elif command == "network-info":
            asyncio.run(network_info())
        elif command == "health":
            asyncio.run(health())
        else:
            print(f"未知命令或参数错误: {' '.join(sys.argv[1:])}")
            print(_USAGE)
            sys.exit(1)
    except ValueError as e:
        print(f"参数无效: {e}")
        sys.exit(1)
    except (ChainUnavailableError, RpcError) as e:
        print(f"执行失败: {e}")
        sys.exit(1)


async def resync(chain_id: int, from_block: int, to_block: int | None) -> None:
    """执行区间回放"""
    setup_logging()
    async with lifespan(start=False) as service:
        print(f"开始回放: chain_id={chain_id} from={from_block} to={from_block if to_block is None else to_block}")
        result = await service.resync(chain_id, from_block, to_block)
        print(
            f"回放完成: 区间 [{result.from_block}, {result.to_block}]，"
            f"事件 {result.events} 条，应用 {result.applied} 条，"
            f"已存在 {result.noop} 条，缺失 {result.missing} 条"
        )


async def sync_task(chain_id: int, blockchain_id: str) -> None:
    """执行单任务同步"""
    setup_logging()
    async with lifespan(start=False) as service:
        task = await service.sync_task(chain_id, blockchain_id)
        print(json.dumps(task.model_dump(mode="json"), ensure_ascii=False, indent=2))


async def network_info() -> None:
    """打印各链网络信息"""
    setup_logging()
    async with lifespan(start=False) as service:
        info = await service.get_network_info()
        print(json.dumps(info, ensure_ascii=False, indent=2))


async def health() -> None:
    """打印健康状态，任一链 RPC 不可达时以非 0 退出"""
    setup_logging()
    async with lifespan(start=False) as service:
        status = await service.check_health()
    print(json.dumps(status, ensure_ascii=False, indent=2))
    if not all(chain["rpc_reachable"] for chain in status["chains"].values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
