"""syncd 守护进程主文件

生命周期管理：日志初始化 -> Store 初始化 -> Chain Registry 加载
-> SyncService 启动 -> 等待停止信号 -> 清理连接。
"""

import asyncio
import signal
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from chainsync.core.config import get_db_path
from chainsync.core.registry import load_chain_registry
from chainsync.core.store import create_store_group
from chainsync.provider import load_rpc_config

from .config import load_engine_config
from .logging_config import setup_logfire, setup_logging
from .services.sync_service import SyncService

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(start: bool = True) -> AsyncGenerator[SyncService, None]:
    """服务生命周期：启动时初始化 DB 和链配置，退出时清理连接

    Args:
        start: 是否启动监听（CLI 的一次性命令不需要）
    """
    store_group = await create_store_group(get_db_path())
    registry = load_chain_registry()
    engine_config = load_engine_config()
    rpc_config = load_rpc_config()

    service = SyncService(
        store_group=store_group,
        registry=registry,
        config=engine_config,
        rpc_config=rpc_config,
    )
    log.info(
        "sync_service_initialized",
        chain_ids=registry.chain_ids(),
        default_network=registry.default_network,
        sync_check_interval_s=engine_config.sync_check_interval_s,
    )

    try:
        if start:
            await service.start()
        yield service
    finally:
        await service.stop()
        await store_group.close()


async def run_daemon() -> None:
    """运行同步守护进程直到收到 SIGINT / SIGTERM"""
    logfire_enabled = setup_logfire(setup_logging())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with lifespan(start=True) as service:
        log.info("syncd_started", logfire_enabled=logfire_enabled)
        if not service.get_health_status()["chains_total"]:
            log.warning("no_chains_configured")
        await stop_event.wait()
        log.info("shutdown_requested")
