"""master -> 子任务字段复制"""

from datetime import datetime

from ..models.enums import TaskStatus
from ..models.task import NewTaskPayload, Task, TaskRecurrence

# 由 clone_for_occurrence 显式设置的字段，其余字段原样复制
_OVERRIDDEN_FIELDS = {"due_at", "timezone", "status", "recurrence"}


def clone_for_occurrence(master: Task, due_at: datetime) -> NewTaskPayload:
    """根据 master 构造一个 occurrence 的写入字段

    纯函数：不做去重检查，不修改 master。

    Raises:
        ValueError: 传入的任务不是 master
    """
    recurrence = master.recurrence
    if recurrence is None or not recurrence.is_master:
        raise ValueError(f"Task {master.task_id} is not a recurring master")

    copied = master.model_dump(
        include=set(NewTaskPayload.model_fields) - _OVERRIDDEN_FIELDS
    )

    return NewTaskPayload(
        **copied,
        due_at=due_at,
        timezone=master.timezone,
        status=TaskStatus.PENDING,
        recurrence=TaskRecurrence(
            type=recurrence.type,
            is_master=False,
            master_task_id=master.task_id,
            cron_expression=recurrence.cron_expression,
            end_date=recurrence.end_date,
        ),
    )
