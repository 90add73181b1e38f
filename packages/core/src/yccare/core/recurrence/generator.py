"""Occurrence 生成器

对单个 master：从最近一个子任务（或 master 自身）的 due_at 出发逐次推进，
在 horizon、end_date、单次上限任一条件触发时停止。
已存在的 (master_task_id, due_at) 跳过但游标照常前进，重复运行不会产生重复任务。
"""

from datetime import datetime
from enum import StrEnum

import structlog
from pydantic import BaseModel, Field

from ..exceptions import DuplicateOccurrenceError
from ..models.task import Task, normalize_timestamp
from ..store.protocols import TaskStore
from .calculator import next_due_at, recurrence_config_error
from .cloner import clone_for_occurrence

log = structlog.get_logger()


class StopReason(StrEnum):
    """单个 master 本轮停止生成的原因"""

    EXHAUSTED = "exhausted"
    HORIZON = "horizon"
    END_DATE = "end_date"
    CAP = "cap"
    MISCONFIGURED = "misconfigured"


class GenerationResult(BaseModel):
    """单个 master 的生成结果"""

    master_task_id: str = Field(description="master ID")
    created: int = Field(default=0, description="新建子任务数")
    skipped: int = Field(default=0, description="已存在而跳过的日期数")
    stop_reason: StopReason = Field(default=StopReason.CAP, description="停止原因")


async def generate_occurrences(
    store: TaskStore,
    master: Task,
    now: datetime,
    horizon: datetime,
    max_per_run: int,
) -> GenerationResult:
    """为一个 master 生成 horizon 内的子任务

    Args:
        store: Task Store
        master: 只读的 master 任务
        now: 本轮运行时刻
        horizon: 不生成晚于此时间的 occurrence
        max_per_run: 本轮最多推进的次数

    Returns:
        GenerationResult，created 为实际新建的子任务数
    """
    recurrence = master.recurrence
    if recurrence is None or not recurrence.is_master:
        raise ValueError(f"Task {master.task_id} is not a recurring master")

    result = GenerationResult(master_task_id=master.task_id)
    horizon = normalize_timestamp(horizon)

    latest_child = await store.find_latest_child(master.task_id)
    cursor = latest_child.due_at if latest_child is not None else master.due_at

    for _ in range(max_per_run):
        candidate = next_due_at(
            recurrence.type,
            cursor,
            master.timezone,
            recurrence.cron_expression,
        )
        if candidate is None:
            config_error = recurrence_config_error(
                recurrence.type,
                master.timezone,
                recurrence.cron_expression,
                previous_due_at=cursor,
            )
            result.stop_reason = (
                StopReason.MISCONFIGURED if config_error else StopReason.EXHAUSTED
            )
            break
        if candidate > horizon:
            result.stop_reason = StopReason.HORIZON
            break
        if recurrence.end_date is not None and candidate > recurrence.end_date:
            result.stop_reason = StopReason.END_DATE
            break

        if await store.exists_child_at(master.task_id, candidate):
            result.skipped += 1
        else:
            try:
                await store.insert(clone_for_occurrence(master, candidate))
                result.created += 1
            except DuplicateOccurrenceError:
                # 并发运行抢先写入了同一日期
                log.info(
                    "occurrence_insert_conflict_skip",
                    master_task_id=master.task_id,
                    due_at=candidate.isoformat(),
                )
                result.skipped += 1

        cursor = candidate

    log.info(
        "occurrences_generated",
        master_task_id=master.task_id,
        now=now.isoformat(),
        created=result.created,
        skipped=result.skipped,
        stop_reason=result.stop_reason.value,
        cursor=cursor.isoformat(),
    )
    return result
