"""重复任务引擎入口

一次 run：计算 now 与 horizon，扫描 master，逐个生成 occurrence。
单个 master 的失败只记录在汇总里，不中断其余 master 的处理。
"""

from datetime import UTC, datetime, timedelta
from enum import StrEnum

import structlog
from pydantic import BaseModel, Field

from ..config import RecurrenceConfig
from ..exceptions import TaskStoreError
from ..models.task import Task, normalize_timestamp
from ..store.protocols import TaskStore
from .generator import StopReason, generate_occurrences
from .scanner import scan_masters

log = structlog.get_logger()


class FailureKind(StrEnum):
    """master 展开失败类型"""

    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


class MasterFailure(BaseModel):
    """单个 master 的失败记录"""

    master_task_id: str
    kind: FailureKind
    error_type: str
    message: str = ""


class RunSummary(BaseModel):
    """一次运行的汇总，交给调度方判断是否告警"""

    started_at: datetime = Field(description="本轮 now")
    horizon: datetime = Field(description="本轮 horizon")
    masters_processed: int = Field(default=0, description="扫描到的 master 数")
    children_created: int = Field(default=0, description="新建子任务数")
    children_skipped: int = Field(default=0, description="已存在而跳过的日期数")
    masters_misconfigured: int = Field(default=0, description="配置错误的 master 数")
    scan_failed: bool = Field(default=False, description="master 扫描是否失败")
    failures: list[MasterFailure] = Field(default_factory=list, description="失败的 master")

    @property
    def masters_errored(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.scan_failed and not self.failures


class RecurrenceEngine:
    """重复任务引擎"""

    def __init__(self, store: TaskStore, config: RecurrenceConfig | None = None) -> None:
        self._store = store
        self._config = config or RecurrenceConfig()

    async def run(self, now: datetime | None = None) -> RunSummary:
        """执行一轮展开，可重复调用（幂等）

        Args:
            now: 本轮运行时刻，缺省为当前 UTC 时间

        Returns:
            RunSummary
        """
        run_now = normalize_timestamp(now or datetime.now(UTC))
        horizon = run_now + timedelta(days=self._config.horizon_days)
        summary = RunSummary(started_at=run_now, horizon=horizon)

        log.info(
            "recurrence_run_started",
            now=run_now.isoformat(),
            horizon=horizon.isoformat(),
            max_per_run=self._config.max_per_run,
        )

        try:
            async for master in scan_masters(
                self._store, run_now, self._config.scan_batch_size
            ):
                await self._process_master(master, run_now, horizon, summary)
        except TaskStoreError as e:
            summary.scan_failed = True
            log.error(
                "master_scan_failed",
                error_type=type(e).__name__,
                error=str(e),
            )

        log.info(
            "recurrence_run_finished",
            masters_processed=summary.masters_processed,
            children_created=summary.children_created,
            children_skipped=summary.children_skipped,
            masters_misconfigured=summary.masters_misconfigured,
            masters_errored=summary.masters_errored,
            scan_failed=summary.scan_failed,
        )
        return summary

    async def _process_master(
        self,
        master: Task,
        now: datetime,
        horizon: datetime,
        summary: RunSummary,
    ) -> None:
        summary.masters_processed += 1
        try:
            result = await generate_occurrences(
                self._store,
                master,
                now,
                horizon,
                self._config.max_per_run,
            )
        except TaskStoreError as e:
            log.error(
                "master_expansion_failed",
                master_task_id=master.task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            summary.failures.append(
                MasterFailure(
                    master_task_id=master.task_id,
                    kind=FailureKind.PERSISTENCE,
                    error_type=type(e).__name__,
                    message=str(e),
                )
            )
            return
        except Exception as e:
            log.exception(
                "master_expansion_crashed",
                master_task_id=master.task_id,
                error_type=type(e).__name__,
            )
            summary.failures.append(
                MasterFailure(
                    master_task_id=master.task_id,
                    kind=FailureKind.UNEXPECTED,
                    error_type=type(e).__name__,
                    message=str(e),
                )
            )
            return

        summary.children_created += result.created
        summary.children_skipped += result.skipped
        if result.stop_reason == StopReason.MISCONFIGURED:
            summary.masters_misconfigured += 1
