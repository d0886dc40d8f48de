"""
Tests for taxflow_engines.trigger_schedule -- config decoding and the firing window.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taxflow_engines.trigger_schedule import (
    decode_trigger_config,
    evaluate_schedule,
    nearest_occurrence,
    normalize_trigger_type,
    parse_schedule_expression,
)
from taxflow_kernel.domain.workflow import (
    EventTriggerConfig,
    FileWatchTriggerConfig,
    ManualTriggerConfig,
    ScheduleCadence,
    ScheduleTriggerConfig,
    TriggerType,
    WebhookTriggerConfig,
)
from taxflow_kernel.exceptions import InvalidTriggerConfigError, UnknownTriggerTypeError


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


DAILY_9 = parse_schedule_expression("daily:09:00")


# =============================================================================
# Decoding
# =============================================================================


class TestNormalizeTriggerType:
    @pytest.mark.parametrize("raw, expected", [
        ("Schedule", TriggerType.SCHEDULE),
        ("schedule", TriggerType.SCHEDULE),
        ("Event", TriggerType.EVENT),
        ("Webhook", TriggerType.WEBHOOK),
        ("Manual", TriggerType.MANUAL),
        ("FileWatch", TriggerType.FILE_WATCH),
        ("file_watch", TriggerType.FILE_WATCH),
        ("file-watch", TriggerType.FILE_WATCH),
    ])
    def test_known_names(self, raw, expected):
        assert normalize_trigger_type(raw) == expected

    def test_unknown_name(self):
        with pytest.raises(UnknownTriggerTypeError):
            normalize_trigger_type("Cron")


class TestParseScheduleExpression:
    def test_daily(self):
        config = parse_schedule_expression("daily:09:30")
        assert config.cadence == ScheduleCadence.DAILY
        assert (config.hour, config.minute) == (9, 30)
        assert config.weekday is None

    @pytest.mark.parametrize("expr, weekday", [
        ("weekly:monday:08:00", 0),
        ("weekly:Fri:08:00", 4),
        ("weekly:6:08:00", 6),
    ])
    def test_weekly(self, expr, weekday):
        config = parse_schedule_expression(expr)
        assert config.cadence == ScheduleCadence.WEEKLY
        assert config.weekday == weekday

    @pytest.mark.parametrize("expr", [
        "",
        "daily",
        "daily:25:00",
        "daily:09:60",
        "daily:nine:00",
        "weekly:funday:09:00",
        "weekly:7:09:00",
        "monthly:1:09:00",
        "0 9 * * *",
    ])
    def test_malformed(self, expr):
        with pytest.raises(InvalidTriggerConfigError) as exc_info:
            parse_schedule_expression(expr)
        assert exc_info.value.code == "INVALID_TRIGGER_CONFIG"


class TestDecodeTriggerConfig:
    def test_schedule_string(self):
        assert decode_trigger_config("Schedule", "daily:09:00") == DAILY_9

    def test_schedule_object_with_variables(self):
        config = decode_trigger_config(
            "schedule", {"schedule": "daily:06:15", "variables": {"tax_type": "PAYE"}},
        )
        assert isinstance(config, ScheduleTriggerConfig)
        assert config.variables == {"tax_type": "PAYE"}

    def test_event(self):
        config = decode_trigger_config("Event", {"event": "filing.submitted"})
        assert config == EventTriggerConfig(event_name="filing.submitted")

    def test_webhook(self):
        assert decode_trigger_config("Webhook", "/hooks/bank") == WebhookTriggerConfig("/hooks/bank")

    def test_file_watch(self):
        config = decode_trigger_config("FileWatch", {"pattern": "inbox/*.pdf"})
        assert config == FileWatchTriggerConfig("inbox/*.pdf")

    def test_manual_ignores_blob(self):
        assert decode_trigger_config("Manual", {"anything": 1}) == ManualTriggerConfig()

    @pytest.mark.parametrize("trigger_type, raw", [
        ("Schedule", None),
        ("Schedule", 42),
        ("Schedule", {"cron": "daily:09:00"}),
        ("Schedule", {"schedule": "daily:09:00", "variables": "tax_type=PAYE"}),
        ("Event", ""),
        ("Webhook", "hooks/no-slash"),
        ("FileWatch", {"pattern": "  "}),
    ])
    def test_bad_blobs(self, trigger_type, raw):
        with pytest.raises(InvalidTriggerConfigError):
            decode_trigger_config(trigger_type, raw)

    def test_unknown_type(self):
        with pytest.raises(UnknownTriggerTypeError):
            decode_trigger_config("Telepathy", "daily:09:00")


# =============================================================================
# Evaluation
# =============================================================================


class TestEvaluateSchedule:
    def test_fires_inside_window(self):
        decision = evaluate_schedule(DAILY_9, utc(2026, 3, 2, 9, 2))
        assert decision.should_fire
        assert decision.occurrence == utc(2026, 3, 2, 9, 0)

    def test_window_edges_are_inclusive(self):
        assert evaluate_schedule(DAILY_9, utc(2026, 3, 2, 8, 55)).should_fire
        assert evaluate_schedule(DAILY_9, utc(2026, 3, 2, 9, 5)).should_fire

    def test_outside_window(self):
        decision = evaluate_schedule(DAILY_9, utc(2026, 3, 2, 9, 6))
        assert not decision.should_fire
        assert decision.reason == "outside_window"

    def test_second_evaluation_in_same_window_does_not_fire(self):
        first_fire = utc(2026, 3, 2, 9, 2)
        decision = evaluate_schedule(DAILY_9, utc(2026, 3, 2, 9, 4), last_fired_at=first_fire)
        assert not decision.should_fire
        assert decision.reason == "already_fired"

    def test_next_day_fires_again(self):
        decision = evaluate_schedule(
            DAILY_9, utc(2026, 3, 3, 9, 1), last_fired_at=utc(2026, 3, 2, 9, 2),
        )
        assert decision.should_fire

    def test_window_spanning_midnight(self):
        config = parse_schedule_expression("daily:23:58")
        decision = evaluate_schedule(config, utc(2026, 3, 3, 0, 1))
        assert decision.should_fire
        assert decision.occurrence == utc(2026, 3, 2, 23, 58)

    def test_weekly_only_on_its_day(self):
        monday = parse_schedule_expression("weekly:monday:09:00")
        tuesday = parse_schedule_expression("weekly:tuesday:09:00")
        now = utc(2026, 3, 2, 9, 0)  # a Monday
        assert evaluate_schedule(monday, now).should_fire
        decision = evaluate_schedule(tuesday, now)
        assert not decision.should_fire

    def test_weekly_far_from_its_day(self):
        friday = parse_schedule_expression("weekly:friday:09:00")
        decision = evaluate_schedule(friday, utc(2026, 3, 2, 9, 0))
        assert decision.reason == "not_scheduled_day"
        assert nearest_occurrence(friday, utc(2026, 3, 2, 9, 0)) is None

    def test_custom_window(self):
        now = utc(2026, 3, 2, 9, 14)
        assert not evaluate_schedule(DAILY_9, now).should_fire
        assert evaluate_schedule(DAILY_9, now, window=timedelta(minutes=15)).should_fire

    def test_non_utc_now_is_normalized(self):
        plus_two = timezone(timedelta(hours=2))
        assert evaluate_schedule(DAILY_9, datetime(2026, 3, 2, 11, 1, tzinfo=plus_two)).should_fire
