"""Master 扫描"""

from collections.abc import AsyncIterator
from datetime import datetime

from ..models.enums import RecurrenceType, TaskStatus
from ..models.task import Task
from ..store.protocols import MasterTaskFilter, TaskStore


def build_master_filter(now: datetime) -> MasterTaskFilter:
    """可展开的 master：非 ONCE、未取消、end_date 为空或不早于 now"""
    return MasterTaskFilter(
        exclude_types={RecurrenceType.ONCE},
        exclude_statuses={TaskStatus.CANCELLED},
        end_date_from=now,
    )


async def scan_masters(
    store: TaskStore,
    now: datetime,
    batch_size: int = 100,
) -> AsyncIterator[Task]:
    """惰性返回本轮需要展开的 master（单次遍历，不可重启）"""
    async for master in store.find_masters(build_master_filter(now), batch_size):
        yield master
