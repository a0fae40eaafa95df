"""SQLite 数据库初始化

PRAGMA 配置 + tasks / sync_events 两张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL：每个 (chain_id, blockchain_id) 一行
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    chain_id          INTEGER NOT NULL,
    blockchain_id     TEXT NOT NULL,
    owner             TEXT NOT NULL,
    description       TEXT NOT NULL DEFAULT '',
    completed         INTEGER NOT NULL DEFAULT 0,
    deleted           INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT NOT NULL,
    completed_at      TEXT,
    deleted_at        TEXT,
    transaction_hash  TEXT NOT NULL DEFAULT '',
    sync_status       TEXT NOT NULL DEFAULT 'synced',
    last_synced_at    TEXT NOT NULL,

    PRIMARY KEY (chain_id, blockchain_id)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner, deleted, completed);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
    (
        "CREATE INDEX IF NOT EXISTS idx_tasks_owner_created_at "
        "ON tasks(owner, created_at DESC);"
    ),
    # 保留策略清理 error 行
    (
        "CREATE INDEX IF NOT EXISTS idx_tasks_sync_status "
        "ON tasks(sync_status, last_synced_at);"
    ),
]

# sync_events 表 DDL：append-only 变更日志
_SYNC_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS sync_events (
    record_id        TEXT PRIMARY KEY,
    chain_id         INTEGER NOT NULL,
    blockchain_id    TEXT NOT NULL,
    ts               TEXT NOT NULL,
    type             TEXT NOT NULL,
    source           TEXT NOT NULL,
    block_number     INTEGER,
    transaction_hash TEXT NOT NULL DEFAULT '',
    payload          TEXT NOT NULL DEFAULT '{}',
    idempotency_key  TEXT
);
"""

_SYNC_EVENTS_INDEXES = [
    (
        "CREATE INDEX IF NOT EXISTS idx_sync_events_task "
        "ON sync_events(chain_id, blockchain_id, record_id);"
    ),
    # 幂等键唯一约束（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_events_idempotency_key "
        "ON sync_events(idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_TASKS_DDL)
    await conn.execute(_SYNC_EVENTS_DDL)

    for idx_sql in _TASKS_INDEXES + _SYNC_EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
