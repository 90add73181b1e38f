"""yccare Core Store -- SQLite 持久化实现

提供工厂函数创建 Task Store 实例。
"""

from pathlib import Path

import aiosqlite
import structlog

from .protocols import MasterTaskFilter, TaskStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore

log = structlog.get_logger()


async def create_store(db_path: str) -> SqliteTaskStore:
    """创建 Task Store（连接由调用方通过 store.conn 关闭）

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        SqliteTaskStore 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    # 内存库或不支持 WAL 的文件系统会退回其他日志模式，并发运行时写锁更易冲突
    if not await verify_wal_mode(conn):
        log.warning("sqlite_wal_unavailable", db_path=db_path)

    return SqliteTaskStore(conn)


__all__ = [
    "MasterTaskFilter",
    "TaskStore",
    "SqliteTaskStore",
    "create_store",
    "init_db",
    "verify_wal_mode",
]
