"""yccare Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    RecurrenceType,
    TaskAudience,
    TaskSource,
    TaskStatus,
    validate_transition,
)
from .task import (
    Medication,
    NewTaskPayload,
    Task,
    TaskAttachment,
    TaskRecurrence,
    TaskReminder,
    build_recurrence,
    normalize_timestamp,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "RecurrenceType",
    "TaskAudience",
    "TaskSource",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # Task
    "Task",
    "NewTaskPayload",
    "TaskRecurrence",
    "TaskReminder",
    "TaskAttachment",
    "Medication",
    "build_recurrence",
    "normalize_timestamp",
]
