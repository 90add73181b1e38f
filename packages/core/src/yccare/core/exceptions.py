"""Core 异常体系

按错误来源划分：持久化错误（TaskStoreError）只影响当前 master，
配置错误（RecurrenceConfigError）只在计算器内部使用，不会向外抛出。
"""

from datetime import datetime


class YccareError(Exception):
    """Core 包基础异常"""


class TaskStoreError(YccareError):
    """Task Store 读写失败（连接、SQL、约束等）"""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """
        Args:
            message: 错误描述
            original_error: 底层驱动抛出的原始异常
        """
        super().__init__(message)
        self.original_error = original_error


class DuplicateOccurrenceError(TaskStoreError):
    """同一 master 在同一 due_at 已存在子任务（去重键冲突）

    生成器将其视为“已存在，跳过”，不是致命错误。
    """

    def __init__(
        self,
        master_task_id: str,
        due_at: datetime,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Occurrence already exists: master={master_task_id} due_at={due_at.isoformat()}",
            original_error=original_error,
        )
        self.master_task_id = master_task_id
        self.due_at = due_at


class RecurrenceConfigError(YccareError):
    """重复规则配置错误（cron 表达式无效、时区不存在等）"""
