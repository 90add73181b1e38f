"""TaskStore SQLite 实现

时间戳统一存储为 UTC、秒级精度的 ISO-8601 字符串，
字典序即时间序，due_at 可直接用于去重键的精确比较。
"""

import json
from collections.abc import AsyncIterator, Iterable
from datetime import UTC, datetime
from typing import Any

import aiosqlite
from ulid import ULID

from ..exceptions import DuplicateOccurrenceError, TaskStoreError
from ..models.enums import TaskStatus, validate_transition
from ..models.task import (
    Medication,
    NewTaskPayload,
    Task,
    TaskAttachment,
    TaskRecurrence,
    TaskReminder,
    normalize_timestamp,
)
from .protocols import MasterTaskFilter

_COLUMNS = (
    "task_id",
    "created_at",
    "updated_at",
    "status",
    "organisation_id",
    "appointment_id",
    "companion_id",
    "created_by",
    "assigned_by",
    "assigned_to",
    "audience",
    "source",
    "library_task_id",
    "template_id",
    "category",
    "name",
    "description",
    "medication",
    "observation_tool_id",
    "due_at",
    "timezone",
    "recurrence_type",
    "is_master",
    "master_task_id",
    "cron_expression",
    "end_date",
    "reminder",
    "sync_with_calendar",
    "attachments",
)

_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM tasks"
_INSERT = (
    f"INSERT INTO tasks ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)


def _ts(value: datetime) -> str:
    return normalize_timestamp(value).isoformat()


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现

    写操作（insert / update_task_status）各自独立提交，
    使去重检查与写入之间的窗口尽量短。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    async def find_masters(
        self,
        task_filter: MasterTaskFilter,
        batch_size: int = 100,
    ) -> AsyncIterator[Task]:
        """按 task_id 键集分页惰性返回 master

        每页查询结束后再 yield，不在写入期间持有打开的游标。
        """
        clauses = ["is_master = 1"]
        base_params: list[Any] = []

        if task_filter.exclude_types:
            types = sorted(t.value for t in task_filter.exclude_types)
            clauses.append(f"recurrence_type NOT IN ({_placeholders(types)})")
            base_params.extend(types)

        if task_filter.exclude_statuses:
            statuses = sorted(s.value for s in task_filter.exclude_statuses)
            clauses.append(f"status NOT IN ({_placeholders(statuses)})")
            base_params.extend(statuses)

        if task_filter.end_date_from is not None:
            clauses.append("(end_date IS NULL OR end_date >= ?)")
            base_params.append(_ts(task_filter.end_date_from))

        sql = (
            f"{_SELECT} WHERE {' AND '.join(clauses)} AND task_id > ? "
            "ORDER BY task_id ASC LIMIT ?"
        )

        last_task_id = ""
        while True:
            rows = await self._fetchall(sql, (*base_params, last_task_id, batch_size))
            for row in rows:
                yield self._row_to_task(row)
            if len(rows) < batch_size:
                return
            last_task_id = rows[-1][0]

    async def find_latest_child(self, master_task_id: str) -> Task | None:
        """返回 due_at 最晚的子任务"""
        rows = await self._fetchall(
            f"{_SELECT} WHERE master_task_id = ? ORDER BY due_at DESC LIMIT 1",
            (master_task_id,),
        )
        return self._row_to_task(rows[0]) if rows else None

    async def exists_child_at(self, master_task_id: str, due_at: datetime) -> bool:
        """去重检查：(master_task_id, due_at) 精确匹配"""
        rows = await self._fetchall(
            "SELECT 1 FROM tasks WHERE master_task_id = ? AND due_at = ? LIMIT 1",
            (master_task_id, _ts(due_at)),
        )
        return bool(rows)

    async def insert(self, payload: NewTaskPayload) -> Task:
        """写入新任务并提交

        Raises:
            DuplicateOccurrenceError: 去重键 (master_task_id, due_at) 冲突
            TaskStoreError: 其他数据库错误
        """
        now = normalize_timestamp(datetime.now(UTC))
        task = Task(
            **payload.model_dump(),
            task_id=str(ULID()),
            created_at=now,
            updated_at=now,
        )
        try:
            await self._conn.execute(_INSERT, self._task_to_params(task))
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            await self._conn.rollback()
            master_task_id = task.recurrence.master_task_id if task.recurrence else None
            if master_task_id is not None and self._is_occurrence_conflict(e):
                raise DuplicateOccurrenceError(master_task_id, task.due_at, e) from e
            raise TaskStoreError(f"Failed to insert task: {e}", original_error=e) from e
        except aiosqlite.Error as e:
            await self._conn.rollback()
            raise TaskStoreError(f"Failed to insert task: {e}", original_error=e) from e
        return task

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        rows = await self._fetchall(f"{_SELECT} WHERE task_id = ?", (task_id,))
        return self._row_to_task(rows[0]) if rows else None

    async def list_children(self, master_task_id: str) -> list[Task]:
        """查询 master 的全部子任务，按 due_at 正序"""
        rows = await self._fetchall(
            f"{_SELECT} WHERE master_task_id = ? ORDER BY due_at ASC",
            (master_task_id,),
        )
        return [self._row_to_task(row) for row in rows]

    async def update_task_status(self, task_id: str, status: TaskStatus) -> bool:
        """按状态机流转任务状态并提交

        Returns:
            是否命中记录；任务不存在时返回 False

        Raises:
            ValueError: 非法流转（含终态任务）
            TaskStoreError: 数据库错误
        """
        rows = await self._fetchall("SELECT status FROM tasks WHERE task_id = ?", (task_id,))
        if not rows:
            return False

        current = TaskStatus(rows[0][0])
        if not validate_transition(current, status):
            raise ValueError(f"Cannot transition task {task_id} from {current} to {status}")

        try:
            # 带上原状态，读取后被并发修改时不覆盖
            cursor = await self._conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE task_id = ? AND status = ?",
                (status.value, _ts(datetime.now(UTC)), task_id, current.value),
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            await self._conn.rollback()
            raise TaskStoreError(f"Failed to update task status: {e}", original_error=e) from e
        return cursor.rowcount > 0

    async def _fetchall(self, sql: str, params: tuple[Any, ...]) -> list[Any]:
        try:
            cursor = await self._conn.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise TaskStoreError(f"Task query failed: {e}", original_error=e) from e

    @staticmethod
    def _is_occurrence_conflict(error: Exception) -> bool:
        text = str(error)
        return (
            "idx_tasks_master_due_at" in text
            or "tasks.master_task_id, tasks.due_at" in text
        )

    @staticmethod
    def _task_to_params(task: Task) -> tuple[Any, ...]:
        """将 Task 模型转换为 INSERT 参数（顺序与 _COLUMNS 一致）"""
        recurrence = task.recurrence
        return (
            task.task_id,
            _ts(task.created_at),
            _ts(task.updated_at),
            task.status.value,
            task.organisation_id,
            task.appointment_id,
            task.companion_id,
            task.created_by,
            task.assigned_by,
            task.assigned_to,
            task.audience.value,
            task.source.value,
            task.library_task_id,
            task.template_id,
            task.category,
            task.name,
            task.description,
            task.medication.model_dump_json() if task.medication else None,
            task.observation_tool_id,
            _ts(task.due_at),
            task.timezone,
            recurrence.type.value if recurrence else None,
            1 if recurrence and recurrence.is_master else 0,
            recurrence.master_task_id if recurrence else None,
            recurrence.cron_expression if recurrence else None,
            _ts(recurrence.end_date) if recurrence and recurrence.end_date else None,
            task.reminder.model_dump_json() if task.reminder else None,
            1 if task.sync_with_calendar else 0,
            json.dumps([a.model_dump() for a in task.attachments], ensure_ascii=False),
        )

    @staticmethod
    def _row_to_task(row: Any) -> Task:
        """将数据库行转换为 Task 模型"""
        data = dict(zip(_COLUMNS, row, strict=True))

        recurrence = None
        if data["recurrence_type"] is not None:
            recurrence = TaskRecurrence(
                type=data["recurrence_type"],
                is_master=bool(data["is_master"]),
                master_task_id=data["master_task_id"],
                cron_expression=data["cron_expression"],
                end_date=(
                    datetime.fromisoformat(data["end_date"]) if data["end_date"] else None
                ),
            )

        return Task(
            task_id=data["task_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            status=data["status"],
            organisation_id=data["organisation_id"],
            appointment_id=data["appointment_id"],
            companion_id=data["companion_id"],
            created_by=data["created_by"],
            assigned_by=data["assigned_by"],
            assigned_to=data["assigned_to"],
            audience=data["audience"],
            source=data["source"],
            library_task_id=data["library_task_id"],
            template_id=data["template_id"],
            category=data["category"],
            name=data["name"],
            description=data["description"],
            medication=(
                Medication(**json.loads(data["medication"])) if data["medication"] else None
            ),
            observation_tool_id=data["observation_tool_id"],
            due_at=datetime.fromisoformat(data["due_at"]),
            timezone=data["timezone"],
            recurrence=recurrence,
            reminder=(
                TaskReminder(**json.loads(data["reminder"])) if data["reminder"] else None
            ),
            sync_with_calendar=bool(data["sync_with_calendar"]),
            attachments=[
                TaskAttachment(**item) for item in json.loads(data["attachments"] or "[]")
            ],
        )
