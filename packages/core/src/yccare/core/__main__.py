"""CLI 入口模块 -- python -m yccare.core <command>

支持的命令：
  init-db         初始化数据库 schema
  run-recurrence  执行一轮重复任务展开（由外部调度器定期触发）
"""

import asyncio
import sys

from .config import get_db_path, load_recurrence_config
from .logging_config import setup_logging


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m yccare.core <command>")
        print("命令:")
        print("  init-db         初始化数据库 schema")
        print("  run-recurrence  执行一轮重复任务展开")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "run-recurrence":
        ok = asyncio.run(run_recurrence())
        if not ok:
            sys.exit(1)
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, run-recurrence")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库与表结构"""
    from .store import create_store

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store = await create_store(db_path)
    await store.conn.close()
    print("初始化完成")


async def run_recurrence() -> bool:
    """执行一轮展开，返回汇总是否无错误"""
    from .recurrence import RecurrenceEngine
    from .store import create_store

    setup_logging()
    config = load_recurrence_config()
    store = await create_store(get_db_path())

    try:
        summary = await RecurrenceEngine(store, config).run()
    finally:
        await store.conn.close()

    print(
        f"展开完成: master {summary.masters_processed} 个, "
        f"新建 {summary.children_created} 个, "
        f"跳过 {summary.children_skipped} 个, "
        f"失败 {summary.masters_errored} 个"
    )
    return summary.ok


if __name__ == "__main__":
    main()
