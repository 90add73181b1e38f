"""Store Protocol 接口定义

定义 TaskStore 抽象接口与 master 扫描过滤条件，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Protocol

from pydantic import BaseModel, Field

from ..models.enums import RecurrenceType, TaskStatus
from ..models.task import NewTaskPayload, Task


class MasterTaskFilter(BaseModel):
    """master 扫描过滤条件"""

    exclude_types: set[RecurrenceType] = Field(
        default_factory=lambda: {RecurrenceType.ONCE},
        description="排除的重复类型",
    )
    exclude_statuses: set[TaskStatus] = Field(
        default_factory=lambda: {TaskStatus.CANCELLED},
        description="排除的任务状态",
    )
    end_date_from: datetime | None = Field(
        default=None,
        description="end_date 为空或不早于此时间的 master 才会被选中",
    )


class TaskStore(Protocol):
    """Task 存储接口"""

    def find_masters(
        self,
        task_filter: MasterTaskFilter,
        batch_size: int = 100,
    ) -> AsyncIterator[Task]:
        """惰性返回满足过滤条件的 master（单次遍历）"""
        ...

    async def find_latest_child(self, master_task_id: str) -> Task | None:
        """返回 due_at 最晚的子任务"""
        ...

    async def exists_child_at(self, master_task_id: str, due_at: datetime) -> bool:
        """去重检查：该 master 在 due_at 是否已有子任务"""
        ...

    async def insert(self, payload: NewTaskPayload) -> Task:
        """写入新任务，冲突时抛出 DuplicateOccurrenceError"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_children(self, master_task_id: str) -> list[Task]:
        """查询 master 的全部子任务，按 due_at 正序"""
        ...

    async def update_task_status(self, task_id: str, status: TaskStatus) -> bool:
        """按状态机更新任务状态，返回是否命中记录；非法流转抛出 ValueError"""
        ...
