"""Task Domain Model

master 任务是重复规则的模板，只读；子任务（occurrence）由引擎生成，
通过 recurrence.master_task_id 回指 master。
due_at / end_date 统一归一化为 UTC、秒级精度，保证去重键比较稳定。
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from .enums import RecurrenceType, TaskAudience, TaskSource, TaskStatus


def normalize_timestamp(value: datetime) -> datetime:
    """归一化时间戳：转换为 UTC 并截断到整秒

    naive datetime 视为 UTC。
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0)


class Medication(BaseModel):
    """用药信息"""

    name: str | None = None
    type: str | None = None
    dosage: str | None = None
    frequency: str | None = None


class TaskReminder(BaseModel):
    """提醒设置"""

    enabled: bool = Field(description="是否启用提醒")
    offset_minutes: int = Field(description="提前提醒的分钟数")


class TaskAttachment(BaseModel):
    """附件引用"""

    id: str
    name: str


class TaskRecurrence(BaseModel):
    """重复规则（嵌入在 Task 中）

    master: is_master=True 且 master_task_id 为空；
    子任务: is_master=False 且 master_task_id 指向唯一的 master。
    """

    type: RecurrenceType = Field(description="重复类型")
    is_master: bool = Field(default=False, description="是否为生成子任务的模板")
    master_task_id: str | None = Field(default=None, description="子任务回指的 master ID")
    cron_expression: str | None = Field(default=None, description="CUSTOM 类型的 cron 表达式")
    end_date: datetime | None = Field(default=None, description="晚于此时间的 occurrence 不再生成")

    @field_validator("end_date")
    @classmethod
    def _normalize_end_date(cls, value: datetime | None) -> datetime | None:
        return normalize_timestamp(value) if value is not None else None


def build_recurrence(
    recurrence_type: RecurrenceType,
    end_date: datetime | None = None,
    cron_expression: str | None = None,
) -> TaskRecurrence:
    """为用户新建的任务构造重复规则

    ONCE 不是 master，也不保留 cron / end_date；其余类型均为 master。
    """
    if recurrence_type == RecurrenceType.ONCE:
        return TaskRecurrence(type=RecurrenceType.ONCE, is_master=False)

    return TaskRecurrence(
        type=recurrence_type,
        is_master=True,
        master_task_id=None,
        cron_expression=cron_expression,
        end_date=end_date,
    )


class NewTaskPayload(BaseModel):
    """待写入的任务字段集合（无 ID / 审计时间）"""

    organisation_id: str | None = Field(default=None, description="机构 ID")
    appointment_id: str | None = Field(default=None, description="预约 ID")
    companion_id: str = Field(description="宠物（companion）ID")

    created_by: str = Field(description="创建者")
    assigned_by: str | None = Field(default=None, description="分配者")
    assigned_to: str = Field(description="执行者")

    audience: TaskAudience = Field(description="任务受众")
    source: TaskSource = Field(default=TaskSource.CUSTOM, description="任务来源")
    library_task_id: str | None = Field(default=None, description="任务库引用")
    template_id: str | None = Field(default=None, description="机构模板引用")

    category: str = Field(description="分类")
    name: str = Field(description="任务名称")
    description: str | None = Field(default=None, description="描述")

    medication: Medication | None = Field(default=None, description="用药信息")
    observation_tool_id: str | None = Field(default=None, description="观察工具引用")

    due_at: datetime = Field(description="到期时间（UTC，秒级）")
    timezone: str | None = Field(default=None, description="IANA 时区名")

    recurrence: TaskRecurrence | None = Field(default=None, description="重复规则")
    reminder: TaskReminder | None = Field(default=None, description="提醒设置")
    sync_with_calendar: bool = Field(default=False, description="是否同步到日历")
    attachments: list[TaskAttachment] = Field(default_factory=list, description="附件")

    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")

    @field_validator("due_at")
    @classmethod
    def _normalize_due_at(cls, value: datetime) -> datetime:
        return normalize_timestamp(value)

    @property
    def is_master(self) -> bool:
        return self.recurrence is not None and self.recurrence.is_master


class Task(NewTaskPayload):
    """Task 数据模型"""

    task_id: str = Field(description="唯一标识，ULID 格式")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
