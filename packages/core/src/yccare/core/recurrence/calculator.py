"""下一次到期时间计算

DAILY / WEEKLY 在任务时区内按日历日推进，跨夏令时保持本地钟点不变；
CUSTOM 交给 croniter 计算，默认时区 UTC。
配置错误不抛出：记录 warning 并返回 None，该 master 本轮停止生成。
"""

from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from croniter import croniter

from ..exceptions import RecurrenceConfigError
from ..models.enums import RecurrenceType
from ..models.task import normalize_timestamp

log = structlog.get_logger()

_CALENDAR_STEPS: dict[RecurrenceType, timedelta] = {
    RecurrenceType.DAILY: timedelta(days=1),
    RecurrenceType.WEEKLY: timedelta(weeks=1),
}


def _resolve_zone(timezone: str | None) -> tzinfo:
    if not timezone:
        return UTC
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RecurrenceConfigError(f"Unknown timezone: {timezone}") from e


def _check_cron(cron_expression: str | None) -> str:
    if not cron_expression:
        raise RecurrenceConfigError("CUSTOM recurrence requires a cron expression")
    if not croniter.is_valid(cron_expression):
        raise RecurrenceConfigError(f"Invalid cron expression: {cron_expression}")
    return cron_expression


def _compute(
    recurrence_type: RecurrenceType,
    previous_due_at: datetime,
    timezone: str | None,
    cron_expression: str | None,
) -> datetime | None:
    if recurrence_type == RecurrenceType.ONCE:
        return None

    zone = _resolve_zone(timezone)
    previous_local = normalize_timestamp(previous_due_at).astimezone(zone)

    step = _CALENDAR_STEPS.get(recurrence_type)
    if step is not None:
        # 同一 tzinfo 下的加法是本地钟点运算
        return previous_local + step

    if recurrence_type == RecurrenceType.CUSTOM:
        expression = _check_cron(cron_expression)
        try:
            return croniter(expression, previous_local).get_next(datetime)
        except ValueError as e:
            raise RecurrenceConfigError(
                f"Cron expression has no next fire time: {expression}"
            ) from e

    return None


def next_due_at(
    recurrence_type: RecurrenceType,
    previous_due_at: datetime,
    timezone: str | None = None,
    cron_expression: str | None = None,
) -> datetime | None:
    """计算下一次到期时间

    Args:
        recurrence_type: 重复类型
        previous_due_at: 上一次到期时间（作为参考时刻）
        timezone: IANA 时区名，缺省为 UTC
        cron_expression: CUSTOM 类型的 cron 表达式

    Returns:
        UTC、秒级精度的下一次到期时间；无后续或配置错误时返回 None
    """
    try:
        result = _compute(recurrence_type, previous_due_at, timezone, cron_expression)
    except RecurrenceConfigError as e:
        log.warning(
            "recurrence_config_invalid",
            recurrence_type=recurrence_type.value,
            timezone=timezone,
            cron_expression=cron_expression,
            error=str(e),
        )
        return None

    return normalize_timestamp(result) if result is not None else None


def recurrence_config_error(
    recurrence_type: RecurrenceType,
    timezone: str | None = None,
    cron_expression: str | None = None,
    previous_due_at: datetime | None = None,
) -> str | None:
    """返回重复规则的配置错误描述，配置有效时返回 None

    传入 previous_due_at 时同时检查从该时刻起能否算出下一次触发
    （语法合法但永不触发的 cron，如 "0 0 30 2 *"）。
    """
    if recurrence_type == RecurrenceType.ONCE:
        return None
    try:
        _resolve_zone(timezone)
        if recurrence_type == RecurrenceType.CUSTOM:
            _check_cron(cron_expression)
        if previous_due_at is not None:
            _compute(recurrence_type, previous_due_at, timezone, cron_expression)
    except RecurrenceConfigError as e:
        return str(e)
    return None
