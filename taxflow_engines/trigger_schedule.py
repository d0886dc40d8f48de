"""
Pure trigger configuration decoding and schedule evaluation.

Contract:
    ``decode_trigger_config(trigger_type, raw)`` turns a stored, opaque
    configuration blob into one of the closed ``TriggerConfig`` variants.
    ``evaluate_schedule(config, now, last_fired_at, window)`` decides
    whether a scheduled trigger fires now.  Both are PURE -- no I/O, no
    clock access.

Architecture: taxflow_engines.  ZERO I/O.

Invariants enforced:
    - A scheduled trigger fires only when ``now`` is within ``window`` of
      an occurrence of its configured time (and, for weekly triggers, the
      occurrence falls on the configured weekday).
    - At most one fire per occurrence window: once ``last_fired_at`` lies
      inside the window of an occurrence, that occurrence never fires
      again.
    - Schedule times are interpreted in UTC.

Accepted configuration shapes:
    schedule   "daily:HH:MM" | "weekly:<day>:HH:MM"
               | {"schedule": "<expr>", "variables": {...}}
    event      "<event name>" | {"event": "<name>", "variables": {...}}
    webhook    "<path>" | {"path": "<path>"}
    file_watch "<glob>" | {"pattern": "<glob>"}
    manual     anything (ignored)
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any

from taxflow_kernel.domain.workflow import (
    EventTriggerConfig,
    FileWatchTriggerConfig,
    ManualTriggerConfig,
    ScheduleCadence,
    ScheduleTriggerConfig,
    TriggerConfig,
    TriggerDecision,
    TriggerType,
    WebhookTriggerConfig,
)
from taxflow_kernel.exceptions import InvalidTriggerConfigError, UnknownTriggerTypeError


# =============================================================================
# Decoding
# =============================================================================


_WEEKDAYS: dict[str, int] = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}


def normalize_trigger_type(value: str | TriggerType) -> TriggerType:
    """Map stored type names (``Schedule``, ``FileWatch``, ``file_watch``) to the enum."""
    if isinstance(value, TriggerType):
        return value
    key = str(value).strip().lower().replace("-", "_")
    if key == "filewatch":
        key = TriggerType.FILE_WATCH.value
    try:
        return TriggerType(key)
    except ValueError:
        raise UnknownTriggerTypeError(str(value)) from None


def _parse_clock(hh: str, mm: str, raw: Any) -> tuple[int, int]:
    try:
        hour, minute = int(hh), int(mm)
    except ValueError:
        raise InvalidTriggerConfigError("schedule", raw, "time must be HH:MM") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise InvalidTriggerConfigError("schedule", raw, f"time {hh}:{mm} out of range")
    return hour, minute


def _parse_weekday(token: str, raw: Any) -> int:
    if token.isdigit():
        day = int(token)
        if 0 <= day <= 6:
            return day
    elif token in _WEEKDAYS:
        return _WEEKDAYS[token]
    raise InvalidTriggerConfigError("schedule", raw, f"unknown weekday {token!r}")


def parse_schedule_expression(
    expression: str,
    variables: dict[str, Any] | None = None,
) -> ScheduleTriggerConfig:
    """Parse ``daily:HH:MM`` or ``weekly:<day>:HH:MM``.

    Raises:
        InvalidTriggerConfigError: On any syntactic or range error.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidTriggerConfigError("schedule", expression, "empty schedule expression")

    parts = [p.strip() for p in expression.strip().lower().split(":")]
    cadence = parts[0]

    if cadence == ScheduleCadence.DAILY.value and len(parts) == 3:
        hour, minute = _parse_clock(parts[1], parts[2], expression)
        return ScheduleTriggerConfig(
            cadence=ScheduleCadence.DAILY,
            hour=hour,
            minute=minute,
            variables=dict(variables or {}),
        )

    if cadence == ScheduleCadence.WEEKLY.value and len(parts) == 4:
        weekday = _parse_weekday(parts[1], expression)
        hour, minute = _parse_clock(parts[2], parts[3], expression)
        return ScheduleTriggerConfig(
            cadence=ScheduleCadence.WEEKLY,
            hour=hour,
            minute=minute,
            weekday=weekday,
            variables=dict(variables or {}),
        )

    raise InvalidTriggerConfigError(
        "schedule", expression, "expected 'daily:HH:MM' or 'weekly:<day>:HH:MM'",
    )


def _field(raw: Any, key: str, trigger_type: TriggerType) -> tuple[Any, dict[str, Any]]:
    """Pull the primary value and optional variables out of a blob."""
    if isinstance(raw, str):
        return raw, {}
    if isinstance(raw, dict):
        if key not in raw:
            raise InvalidTriggerConfigError(trigger_type.value, raw, f"missing '{key}'")
        variables = raw.get("variables") or {}
        if not isinstance(variables, dict):
            raise InvalidTriggerConfigError(
                trigger_type.value, raw, "'variables' must be an object",
            )
        return raw[key], variables
    raise InvalidTriggerConfigError(
        trigger_type.value, raw, "configuration must be a string or an object",
    )


def decode_trigger_config(trigger_type: str | TriggerType, raw: Any) -> TriggerConfig:
    """Decode a stored configuration blob into its typed variant.

    Raises:
        UnknownTriggerTypeError: ``trigger_type`` is outside the closed set.
        InvalidTriggerConfigError: the blob does not match the type's shape.
    """
    ttype = normalize_trigger_type(trigger_type)

    if ttype == TriggerType.MANUAL:
        return ManualTriggerConfig()

    if ttype == TriggerType.SCHEDULE:
        expression, variables = _field(raw, "schedule", ttype)
        return parse_schedule_expression(expression, variables)

    if ttype == TriggerType.EVENT:
        event_name, variables = _field(raw, "event", ttype)
        if not isinstance(event_name, str) or not event_name.strip():
            raise InvalidTriggerConfigError(ttype.value, raw, "event name is empty")
        return EventTriggerConfig(event_name=event_name.strip(), variables=dict(variables))

    if ttype == TriggerType.WEBHOOK:
        path, _ = _field(raw, "path", ttype)
        if not isinstance(path, str) or not path.startswith("/"):
            raise InvalidTriggerConfigError(ttype.value, raw, "webhook path must start with '/'")
        return WebhookTriggerConfig(path=path)

    pattern, _ = _field(raw, "pattern", ttype)
    if not isinstance(pattern, str) or not pattern.strip():
        raise InvalidTriggerConfigError(ttype.value, raw, "file pattern is empty")
    return FileWatchTriggerConfig(pattern=pattern.strip())


# =============================================================================
# Schedule evaluation
# =============================================================================


def nearest_occurrence(config: ScheduleTriggerConfig, now: datetime) -> datetime | None:
    """Occurrence of the configured time closest to ``now``.

    Yesterday, today and tomorrow are considered so that windows spanning
    midnight work.  Returns None for a weekly trigger with no occurrence
    in that span.
    """
    now = now.astimezone(timezone.utc)
    candidates = []
    for offset in (-1, 0, 1):
        day = (now + timedelta(days=offset)).date()
        occurrence = datetime.combine(
            day, time(config.hour, config.minute), tzinfo=timezone.utc,
        )
        if config.cadence == ScheduleCadence.WEEKLY and occurrence.weekday() != config.weekday:
            continue
        candidates.append(occurrence)
    if not candidates:
        return None
    return min(candidates, key=lambda occ: abs(now - occ))


def evaluate_schedule(
    config: ScheduleTriggerConfig,
    now: datetime,
    last_fired_at: datetime | None = None,
    window: timedelta = timedelta(minutes=5),
) -> TriggerDecision:
    """Decide whether a scheduled trigger fires at ``now``."""
    occurrence = nearest_occurrence(config, now)
    if occurrence is None:
        return TriggerDecision(should_fire=False, reason="not_scheduled_day")

    if abs(now - occurrence) > window:
        return TriggerDecision(should_fire=False, reason="outside_window", occurrence=occurrence)

    if last_fired_at is not None and last_fired_at >= occurrence - window:
        return TriggerDecision(should_fire=False, reason="already_fired", occurrence=occurrence)

    return TriggerDecision(should_fire=True, reason="due", occurrence=occurrence)
