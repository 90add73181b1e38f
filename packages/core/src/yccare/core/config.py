"""配置模块 -- 可通过环境变量覆盖

包含数据库路径与重复任务引擎的边界参数（horizon、单次生成上限、扫描批大小）。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("YCCARE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "YCCARE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "yccare.db"),
    )


class RecurrenceConfig(BaseModel):
    """重复任务引擎配置

    环境变量:
        YCCARE_RECURRENCE_HORIZON_DAYS: 向前生成的天数窗口（默认 30）
        YCCARE_RECURRENCE_MAX_PER_RUN: 每个 master 单次运行最多生成的子任务数（默认 50）
        YCCARE_RECURRENCE_SCAN_BATCH_SIZE: 扫描 master 的分页大小（默认 100）
    """

    horizon_days: int = Field(default=30, ge=1, description="生成窗口（天）")
    max_per_run: int = Field(default=50, ge=1, description="单 master 单次运行生成上限")
    scan_batch_size: int = Field(default=100, ge=1, description="master 扫描分页大小")


_ENV_FIELDS: dict[str, str] = {
    "YCCARE_RECURRENCE_HORIZON_DAYS": "horizon_days",
    "YCCARE_RECURRENCE_MAX_PER_RUN": "max_per_run",
    "YCCARE_RECURRENCE_SCAN_BATCH_SIZE": "scan_batch_size",
}


def load_recurrence_config() -> RecurrenceConfig:
    """从环境变量加载引擎配置

    非法整数值记录 warning 并回退到默认值，不阻塞运行。

    Returns:
        RecurrenceConfig 实例
    """
    defaults = RecurrenceConfig()
    kwargs: dict = {}

    for env_var, field_name in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            parsed = int(val)
        except ValueError:
            parsed = 0
        if parsed < 1:
            log.warning(
                "invalid_recurrence_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            continue
        kwargs[field_name] = parsed

    return RecurrenceConfig(**kwargs)
