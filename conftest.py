"""全局 pytest 配置 -- 临时 SQLite 数据库 + 任务构造 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio
from yccare.core.models import (
    Medication,
    NewTaskPayload,
    RecurrenceType,
    Task,
    TaskAttachment,
    TaskAudience,
    TaskReminder,
    TaskSource,
    build_recurrence,
)
from yccare.core.store.sqlite_init import init_db
from yccare.core.store.task_store import SqliteTaskStore


def _default_task_fields() -> dict[str, Any]:
    return {
        "organisation_id": "org-1",
        "appointment_id": "appt-1",
        "companion_id": "companion-1",
        "created_by": "vet-1",
        "assigned_by": "vet-1",
        "assigned_to": "parent-1",
        "audience": TaskAudience.PARENT_TASK,
        "source": TaskSource.ORG_TEMPLATE,
        "library_task_id": "lib-1",
        "template_id": "tpl-1",
        "category": "MEDICATION",
        "name": "Give antibiotics",
        "description": "Mix with food",
        "medication": Medication(
            name="Amoxicillin", type="tablet", dosage="50mg", frequency="daily"
        ),
        "observation_tool_id": "obs-1",
        "due_at": datetime(2024, 1, 1, 9, 0, tzinfo=UTC),
        "timezone": None,
        "reminder": TaskReminder(enabled=True, offset_minutes=30),
        "sync_with_calendar": True,
        "attachments": [TaskAttachment(id="att-1", name="prescription.pdf")],
    }


@pytest.fixture
def master_payload() -> Callable[..., NewTaskPayload]:
    """构造 master 写入字段（可覆盖任意字段）"""

    def _build(
        recurrence_type: RecurrenceType = RecurrenceType.DAILY,
        end_date: datetime | None = None,
        cron_expression: str | None = None,
        **overrides: Any,
    ) -> NewTaskPayload:
        fields = _default_task_fields()
        fields["recurrence"] = build_recurrence(recurrence_type, end_date, cron_expression)
        fields.update(overrides)
        return NewTaskPayload(**fields)

    return _build


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def task_store(db_conn: aiosqlite.Connection) -> SqliteTaskStore:
    """提供 SQLite TaskStore"""
    return SqliteTaskStore(db_conn)


@pytest_asyncio.fixture
async def create_master(
    task_store: SqliteTaskStore,
    master_payload: Callable[..., NewTaskPayload],
) -> Callable[..., Awaitable[Task]]:
    """写入一个 master 并返回持久化后的 Task"""

    async def _create(*args: Any, **kwargs: Any) -> Task:
        return await task_store.insert(master_payload(*args, **kwargs))

    return _create
