"""CLI 入口测试 -- python -m yccare.core"""

import sys
from datetime import UTC, datetime, timedelta

import pytest
from yccare.core import __main__ as cli
from yccare.core.store import create_store


@pytest.fixture
def db_env(monkeypatch, tmp_path):
    db_path = tmp_path / "sqlite" / "cli.db"
    monkeypatch.setenv("YCCARE_DB_PATH", str(db_path))
    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    return db_path


class TestMain:
    def test_no_command_exits(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["yccare"])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        assert exc_info.value.code == 1
        assert "run-recurrence" in capsys.readouterr().out

    def test_unknown_command_exits(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["yccare", "explode"])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        assert exc_info.value.code == 1

    def test_init_db_creates_file(self, monkeypatch, db_env):
        monkeypatch.setattr(sys, "argv", ["yccare", "init-db"])
        cli.main()
        assert db_env.exists()


class TestRunRecurrence:
    async def test_run_expands_masters(self, db_env, master_payload, capsys):
        store = await create_store(str(db_env))
        master = await store.insert(
            master_payload(due_at=datetime.now(UTC) - timedelta(hours=1))
        )
        await store.conn.close()

        ok = await cli.run_recurrence()

        assert ok
        assert "新建 30 个" in capsys.readouterr().out

        store = await create_store(str(db_env))
        try:
            assert len(await store.list_children(master.task_id)) == 30
        finally:
            await store.conn.close()
