"""syncd 服务层"""

from .backfill import BackfillEngine, BackfillResult
from .listener import BlockPoller, BlockSeen, ConnectionLost, EventListener
from .reconciler import DriftReconciler, DriftReport
from .reorg import ReorgDetector
from .supervisor import ConnectionSupervisor
from .sync_service import ChainUnavailableError, SyncService

__all__ = [
    "BackfillEngine",
    "BackfillResult",
    "BlockPoller",
    "BlockSeen",
    "ConnectionLost",
    "EventListener",
    "DriftReconciler",
    "DriftReport",
    "ReorgDetector",
    "ConnectionSupervisor",
    "ChainUnavailableError",
    "SyncService",
]
