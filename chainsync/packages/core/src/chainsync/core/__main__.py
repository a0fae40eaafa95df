"""CLI 入口模块 -- python -m chainsync.core <command>

支持的命令：
  purge-errors  清理超过保留期的 sync_status=error 记录
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta

from .config import get_db_path, get_error_retention_s


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m chainsync.core <command>")
        print("命令:")
        print("  purge-errors  清理超过保留期的 error 记录")
        sys.exit(1)

    command = sys.argv[1]

    if command == "purge-errors":
        asyncio.run(purge_errors())
    else:
        print(f"未知命令: {command}")
        print("可用命令: purge-errors")
        sys.exit(1)


async def purge_errors() -> None:
    """执行 error 记录清理"""
    from .store import create_store_group

    db_path = get_db_path()
    retention_s = get_error_retention_s()
    before = datetime.now(UTC) - timedelta(seconds=retention_s)

    print(f"数据库路径: {db_path}")
    print(f"保留期: {retention_s} 秒")

    store_group = await create_store_group(db_path)

    try:
        async with store_group.write_lock:
            removed = await store_group.task_store.purge_expired_errors(before)
            await store_group.conn.commit()
        print(f"清理完成，删除 {removed} 条记录")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
