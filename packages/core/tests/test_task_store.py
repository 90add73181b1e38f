"""SqliteTaskStore 单元测试

测试内容：
1. 写入/读取字段完整
2. master 扫描过滤与分页
3. 子任务查询与去重键约束
4. 错误包装
"""

from datetime import UTC, datetime, timedelta

import pytest
from structlog.testing import capture_logs
from yccare.core.exceptions import DuplicateOccurrenceError, TaskStoreError
from yccare.core.models import RecurrenceType, TaskRecurrence, TaskStatus
from yccare.core.recurrence.cloner import clone_for_occurrence
from yccare.core.store import MasterTaskFilter, create_store, verify_wal_mode

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


async def _collect(store, task_filter, batch_size=100):
    return [task async for task in store.find_masters(task_filter, batch_size)]


class TestInsertAndGet:
    """写入与读取"""

    async def test_roundtrip_preserves_fields(self, task_store, master_payload):
        payload = master_payload(
            RecurrenceType.CUSTOM,
            end_date=datetime(2024, 3, 1, tzinfo=UTC),
            cron_expression="0 9 * * MON",
            timezone="America/New_York",
        )
        created = await task_store.insert(payload)
        loaded = await task_store.get_task(created.task_id)

        assert loaded is not None
        assert loaded == created
        assert loaded.model_dump(exclude={"task_id", "created_at", "updated_at"}) == (
            payload.model_dump()
        )

    async def test_insert_assigns_ulid_and_timestamps(self, task_store, master_payload):
        created = await task_store.insert(master_payload())
        assert len(created.task_id) == 26
        assert created.created_at == created.updated_at
        assert created.created_at.microsecond == 0

    async def test_get_missing_returns_none(self, task_store):
        assert await task_store.get_task("missing") is None

    async def test_task_without_recurrence(self, task_store, master_payload):
        created = await task_store.insert(master_payload(recurrence=None))
        loaded = await task_store.get_task(created.task_id)
        assert loaded.recurrence is None


class TestFindMasters:
    """master 扫描"""

    async def test_filters_once_cancelled_and_expired(self, task_store, create_master):
        active = await create_master()
        await create_master(RecurrenceType.ONCE)
        cancelled = await create_master()
        await task_store.update_task_status(cancelled.task_id, TaskStatus.CANCELLED)
        await create_master(end_date=NOW - timedelta(days=1))
        open_ended = await create_master(RecurrenceType.WEEKLY, end_date=NOW)

        found = await _collect(task_store, MasterTaskFilter(end_date_from=NOW))

        assert {t.task_id for t in found} == {active.task_id, open_ended.task_id}

    async def test_children_are_not_masters(self, task_store, create_master):
        master = await create_master()
        await task_store.insert(clone_for_occurrence(master, NOW + timedelta(days=1)))

        found = await _collect(task_store, MasterTaskFilter())

        assert [t.task_id for t in found] == [master.task_id]

    async def test_pages_through_all_masters(self, task_store, create_master):
        created = [await create_master() for _ in range(5)]

        found = await _collect(task_store, MasterTaskFilter(), batch_size=2)

        assert sorted(t.task_id for t in found) == sorted(t.task_id for t in created)
        assert len(found) == 5

    async def test_empty_store(self, task_store):
        assert await _collect(task_store, MasterTaskFilter()) == []


class TestChildren:
    """子任务查询与去重"""

    async def test_latest_child_and_exists(self, task_store, create_master):
        master = await create_master()
        assert await task_store.find_latest_child(master.task_id) is None

        day2 = NOW + timedelta(days=2)
        day1 = NOW + timedelta(days=1)
        await task_store.insert(clone_for_occurrence(master, day2))
        await task_store.insert(clone_for_occurrence(master, day1))

        latest = await task_store.find_latest_child(master.task_id)
        assert latest.due_at == day2
        assert await task_store.exists_child_at(master.task_id, day1)
        assert not await task_store.exists_child_at(master.task_id, NOW + timedelta(days=3))

        children = await task_store.list_children(master.task_id)
        assert [c.due_at for c in children] == [day1, day2]

    async def test_exists_ignores_sub_second_drift(self, task_store, create_master):
        master = await create_master()
        due = NOW + timedelta(days=1)
        await task_store.insert(clone_for_occurrence(master, due))

        assert await task_store.exists_child_at(
            master.task_id, due + timedelta(microseconds=400_000)
        )

    async def test_duplicate_occurrence_rejected(self, task_store, create_master):
        master = await create_master()
        due = NOW + timedelta(days=1)
        await task_store.insert(clone_for_occurrence(master, due))

        with pytest.raises(DuplicateOccurrenceError) as exc_info:
            await task_store.insert(clone_for_occurrence(master, due))

        assert exc_info.value.master_task_id == master.task_id
        assert exc_info.value.due_at == due
        assert len(await task_store.list_children(master.task_id)) == 1

    async def test_unknown_master_reference_is_store_error(self, task_store, master_payload):
        payload = master_payload(
            recurrence=TaskRecurrence(
                type=RecurrenceType.DAILY,
                is_master=False,
                master_task_id="does-not-exist",
            )
        )
        with pytest.raises(TaskStoreError) as exc_info:
            await task_store.insert(payload)
        assert not isinstance(exc_info.value, DuplicateOccurrenceError)


class TestStatusAndSchema:
    """状态更新与 schema"""

    async def test_update_status(self, task_store, create_master):
        master = await create_master()
        assert await task_store.update_task_status(master.task_id, TaskStatus.CANCELLED)
        loaded = await task_store.get_task(master.task_id)
        assert loaded.status == TaskStatus.CANCELLED

    async def test_update_status_missing(self, task_store):
        assert not await task_store.update_task_status("missing", TaskStatus.CANCELLED)

    async def test_wal_mode_enabled(self, db_conn):
        assert await verify_wal_mode(db_conn)

    async def test_cancelled_task_cannot_be_revived(self, task_store, create_master):
        master = await create_master()
        await task_store.update_task_status(master.task_id, TaskStatus.CANCELLED)

        with pytest.raises(ValueError):
            await task_store.update_task_status(master.task_id, TaskStatus.PENDING)

        loaded = await task_store.get_task(master.task_id)
        assert loaded.status == TaskStatus.CANCELLED

    async def test_update_follows_state_machine(self, task_store, create_master):
        master = await create_master()

        assert await task_store.update_task_status(master.task_id, TaskStatus.IN_PROGRESS)
        assert await task_store.update_task_status(master.task_id, TaskStatus.PENDING)
        assert await task_store.update_task_status(master.task_id, TaskStatus.COMPLETED)
        with pytest.raises(ValueError):
            await task_store.update_task_status(master.task_id, TaskStatus.IN_PROGRESS)


class TestCreateStore:
    """create_store 工厂"""

    async def test_file_store_uses_wal(self, tmp_path):
        with capture_logs() as logs:
            store = await create_store(str(tmp_path / "sqlite" / "yccare.db"))
        try:
            assert await verify_wal_mode(store.conn)
        finally:
            await store.conn.close()
        assert not any(e["event"] == "sqlite_wal_unavailable" for e in logs)

    async def test_warns_when_wal_unavailable(self):
        """内存数据库不支持 WAL"""
        with capture_logs() as logs:
            store = await create_store(":memory:")
        await store.conn.close()

        warnings = [e for e in logs if e["event"] == "sqlite_wal_unavailable"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"
        assert warnings[0]["db_path"] == ":memory:"
