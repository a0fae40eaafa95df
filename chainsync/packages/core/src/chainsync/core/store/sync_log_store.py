"""SyncLogStore SQLite 实现

sync_events 表 append-only：只允许插入，不允许更新或删除。
带幂等键的记录重复写入时静默忽略。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import MutationSource, RecordType
from ..models.event import SyncRecord


class SqliteSyncLogStore:
    """SyncLogStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_record(self, record: SyncRecord) -> bool:
        """追加同步记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。

        Returns:
            True 如果写入了新记录，幂等键冲突时 False
        """
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO sync_events (record_id, chain_id, blockchain_id, ts,
                                               type, source, block_number,
                                               transaction_hash, payload, idempotency_key)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.record_id,
                record.chain_id,
                record.blockchain_id,
                record.ts.isoformat(),
                record.type.value,
                record.source.value,
                record.block_number,
                record.transaction_hash,
                json.dumps(record.payload, ensure_ascii=False, default=str),
                record.idempotency_key,
            ),
        )
        return cursor.rowcount == 1

    async def list_for_task(self, chain_id: int, blockchain_id: str) -> list[SyncRecord]:
        """查询指定任务的所有同步记录，按写入时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM sync_events
            WHERE chain_id = ? AND blockchain_id = ?
            ORDER BY ts ASC, record_id ASC
            """,
            (chain_id, blockchain_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def check_idempotency_key(self, key: str) -> bool:
        """检查幂等键是否已记录"""
        cursor = await self._conn.execute(
            "SELECT 1 FROM sync_events WHERE idempotency_key = ? LIMIT 1",
            (key,),
        )
        row = await cursor.fetchone()
        return row is not None

    async def count_by_source(self, chain_id: int | None = None) -> dict[str, int]:
        """按来源统计记录数"""
        if chain_id is None:
            cursor = await self._conn.execute(
                "SELECT source, COUNT(*) FROM sync_events GROUP BY source"
            )
        else:
            cursor = await self._conn.execute(
                "SELECT source, COUNT(*) FROM sync_events WHERE chain_id = ? GROUP BY source",
                (chain_id,),
            )
        rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> SyncRecord:
        """将数据库行转换为 SyncRecord 模型"""
        payload = json.loads(row[8]) if row[8] else {}
        return SyncRecord(
            record_id=row[0],
            chain_id=row[1],
            blockchain_id=row[2],
            ts=datetime.fromisoformat(row[3]),
            type=RecordType(row[4]),
            source=MutationSource(row[5]),
            block_number=row[6],
            transaction_hash=row[7],
            payload=payload,
            idempotency_key=row[9],
        )
