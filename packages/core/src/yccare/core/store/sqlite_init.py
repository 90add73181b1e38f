"""SQLite 数据库初始化

PRAGMA 配置 + tasks 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（recurrence 展开为独立列，便于扫描与去重索引）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id              TEXT PRIMARY KEY,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    status               TEXT NOT NULL DEFAULT 'PENDING',
    organisation_id      TEXT,
    appointment_id       TEXT,
    companion_id         TEXT NOT NULL,
    created_by           TEXT NOT NULL,
    assigned_by          TEXT,
    assigned_to          TEXT NOT NULL,
    audience             TEXT NOT NULL,
    source               TEXT NOT NULL DEFAULT 'CUSTOM',
    library_task_id      TEXT,
    template_id          TEXT,
    category             TEXT NOT NULL DEFAULT '',
    name                 TEXT NOT NULL DEFAULT '',
    description          TEXT,
    medication           TEXT,
    observation_tool_id  TEXT,
    due_at               TEXT NOT NULL,
    timezone             TEXT,
    recurrence_type      TEXT,
    is_master            INTEGER NOT NULL DEFAULT 0,
    master_task_id       TEXT,
    cron_expression      TEXT,
    end_date             TEXT,
    reminder             TEXT,
    sync_with_calendar   INTEGER NOT NULL DEFAULT 0,
    attachments          TEXT NOT NULL DEFAULT '[]',

    FOREIGN KEY (master_task_id) REFERENCES tasks(task_id)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_companion_due ON tasks(companion_id, due_at);",
    # master 扫描
    "CREATE INDEX IF NOT EXISTS idx_tasks_is_master ON tasks(is_master, status);",
    # 去重键唯一约束（仅对子任务生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_master_due_at "
        "ON tasks(master_task_id, due_at) WHERE master_task_id IS NOT NULL;"
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

    for idx_sql in _TASKS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
