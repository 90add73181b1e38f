"""structlog 日志初始化

展开任务多由 cron / systemd timer 触发，日志写到 stderr：
- json: 每行一个 JSON 对象，异常栈展开为字符串字段，便于采集
- dev: 终端可读输出（默认）

structlog 与标准库 logging 共用同一个 handler，aiosqlite 等第三方库的
日志也经过同一条处理链。
"""

import logging
import os
import sys

import structlog

_DEFAULT_FORMAT = "dev"
_DEFAULT_LEVEL = "INFO"

# aiosqlite 在 DEBUG 级别逐条打印语句执行，展开一次会刷出上千行
_QUIET_LOGGERS = {"aiosqlite": logging.WARNING}


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_chain(log_format: str) -> list[structlog.types.Processor]:
    if log_format == "json":
        return [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.dev.ConsoleRenderer(),
    ]


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 与根 logger

    Args:
        log_format: "json" 或 "dev"，缺省读取 YCCARE_LOG_FORMAT；未知值按 dev 处理
        log_level: 日志级别名，缺省读取 YCCARE_LOG_LEVEL；未知值按 INFO 处理
    """
    log_format = (log_format or os.environ.get("YCCARE_LOG_FORMAT", _DEFAULT_FORMAT)).lower()
    log_level = (log_level or os.environ.get("YCCARE_LOG_LEVEL", _DEFAULT_LEVEL)).upper()
    level = logging.getLevelNamesMapping().get(log_level, logging.INFO)

    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=_render_chain(log_format),
            foreign_pre_chain=shared,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))
