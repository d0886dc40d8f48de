"""
Configuration Loader (``taxflow_config.loader``).

Responsibility
--------------
Loads the workflow policy YAML file and parses it into the frozen
``taxflow_config.schema`` dataclasses.  Every section is optional; an
omitted section keeps its compatibility default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong shapes or values inside a section  -> ``ConfigurationError``
  naming the section.
"""

from __future__ import annotations

import os
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from taxflow_config.schema import (
    DEFAULT_CONFIG,
    DEFAULT_JOB_SCHEDULES,
    AlertPolicy,
    ApprovalChainPolicy,
    ApprovalThreshold,
    EscalationPolicy,
    JobSchedule,
    PenaltyPolicy,
    RetentionPolicy,
    TriggerPolicy,
    WorkflowConfig,
)
from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.communication import Priority
from taxflow_kernel.exceptions import ConfigurationError

CONFIG_PATH_ENV = "TAXFLOW_CONFIG"
DATABASE_URL_ENV = "TAXFLOW_DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, section: str) -> Decimal:
    """Parse a money/rate value.  Floats go through str() to avoid binary noise."""
    if isinstance(value, bool):
        raise ConfigurationError(section, f"expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(section, f"not a number: {value!r}") from exc


def _parse_role(value: Any, section: str) -> Role:
    try:
        return Role(str(value).strip().capitalize())
    except ValueError as exc:
        raise ConfigurationError(section, f"unknown role {value!r}") from exc


def _parse_priority(value: Any, section: str) -> Priority:
    try:
        return Priority(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigurationError(section, f"unknown priority {value!r}") from exc


def _positive_int(value: Any, section: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(section, f"expected a positive integer, got {value!r}")
    return value


def parse_approval_policy(data: list[dict[str, Any]]) -> ApprovalChainPolicy:
    """
    Parse the ``approval_thresholds`` list.

    Each entry: ``{min_amount, max_amount (optional), chain: [roles]}``.
    Bands must not overlap and are sorted by ``min_amount``.
    """
    section = "approval_thresholds"
    if not isinstance(data, list) or not data:
        raise ConfigurationError(section, "expected a non-empty list")

    thresholds = []
    for entry in data:
        chain = entry.get("chain") or []
        if not chain:
            raise ConfigurationError(section, f"empty chain in {entry!r}")
        max_raw = entry.get("max_amount")
        thresholds.append(ApprovalThreshold(
            min_amount=parse_decimal(entry.get("min_amount", 0), section),
            max_amount=parse_decimal(max_raw, section) if max_raw is not None else None,
            chain=tuple(_parse_role(r, section) for r in chain),
        ))

    thresholds.sort(key=lambda t: t.min_amount)
    for lower, upper in zip(thresholds, thresholds[1:]):
        if lower.max_amount is None or lower.max_amount > upper.min_amount:
            raise ConfigurationError(
                section,
                f"band starting at {lower.min_amount} overlaps band starting at {upper.min_amount}",
            )
    return ApprovalChainPolicy(thresholds=tuple(thresholds))


def parse_penalty_policy(data: dict[str, Any]) -> PenaltyPolicy:
    section = "penalty"
    max_rate = data.get("max_rate")
    return PenaltyPolicy(
        rate_per_month=parse_decimal(data.get("rate_per_month", "0.05"), section),
        days_per_month=_positive_int(data.get("days_per_month", 30), section),
        max_rate=parse_decimal(max_rate, section) if max_rate is not None else None,
        penalty_type=str(data.get("penalty_type", "late_filing")),
    )


def parse_alert_policy(data: dict[str, Any]) -> AlertPolicy:
    section = "alerts"
    raw = data.get("thresholds_days", [30, 14, 7, 1])
    days = tuple(sorted({_positive_int(d, section) for d in raw}, reverse=True))
    return AlertPolicy(
        thresholds_days=days,
        warning_at_days=int(data.get("warning_at_days", 7)),
    )


def parse_escalation_policy(data: dict[str, Any]) -> EscalationPolicy:
    section = "escalation"
    defaults = EscalationPolicy()

    thresholds = dict(defaults.threshold_minutes)
    for key, minutes in (data.get("threshold_minutes") or {}).items():
        thresholds[_parse_priority(key, section)] = _positive_int(minutes, section)

    initial = dict(defaults.initial_roles)
    for key, role in (data.get("initial_roles") or {}).items():
        initial[_parse_priority(key, section)] = _parse_role(role, section)

    ladder_raw = data.get("ladder")
    ladder = (
        tuple(_parse_role(r, section) for r in ladder_raw)
        if ladder_raw else defaults.ladder
    )
    return EscalationPolicy(
        threshold_minutes=thresholds,
        initial_roles=initial,
        ladder=ladder,
    )


def parse_jobs(data: dict[str, Any]) -> tuple[JobSchedule, ...]:
    """Overlay per-job settings on the default schedules."""
    section = "jobs"
    by_name = {s.job_name: s for s in DEFAULT_JOB_SCHEDULES}
    for job_name, settings in data.items():
        base = by_name.get(job_name)
        if base is None:
            raise ConfigurationError(section, f"unknown job {job_name!r}")
        settings = settings or {}
        by_name[job_name] = JobSchedule(
            job_name=job_name,
            interval_seconds=_positive_int(
                settings.get("interval_seconds", base.interval_seconds), section,
            ),
            lease_seconds=_positive_int(
                settings.get("lease_seconds", base.lease_seconds), section,
            ),
            enabled=bool(settings.get("enabled", base.enabled)),
        )
    return tuple(by_name[s.job_name] for s in DEFAULT_JOB_SCHEDULES)


def parse_config(data: dict[str, Any]) -> WorkflowConfig:
    """Parse a full configuration dict (already loaded from YAML)."""
    kwargs: dict[str, Any] = {}

    if "database_url" in data:
        kwargs["database_url"] = str(data["database_url"])
    if "default_currency" in data:
        kwargs["default_currency"] = str(data["default_currency"])
    if "approval_thresholds" in data:
        kwargs["approval"] = parse_approval_policy(data["approval_thresholds"])
    if "penalty" in data:
        kwargs["penalty"] = parse_penalty_policy(data["penalty"] or {})
    if "alerts" in data:
        kwargs["alerts"] = parse_alert_policy(data["alerts"] or {})
    if "escalation" in data:
        kwargs["escalation"] = parse_escalation_policy(data["escalation"] or {})
    if "retention" in data:
        days = (data["retention"] or {}).get("archive_after_days", 90)
        kwargs["retention"] = RetentionPolicy(
            archive_after_days=_positive_int(days, "retention"),
        )
    if "triggers" in data:
        window = (data["triggers"] or {}).get("window_minutes", 5)
        kwargs["triggers"] = TriggerPolicy(
            window_minutes=_positive_int(window, "triggers"),
        )
    if "jobs" in data:
        kwargs["jobs"] = parse_jobs(data["jobs"] or {})
    if "handlers" in data:
        kwargs["handlers"] = {
            _parse_role(role, "handlers").value: str(handler)
            for role, handler in (data["handlers"] or {}).items()
        }
    if "scheduler_tick_seconds" in data:
        kwargs["scheduler_tick_seconds"] = _positive_int(
            data["scheduler_tick_seconds"], "scheduler_tick_seconds",
        )

    unknown = set(data) - {
        "database_url", "default_currency", "approval_thresholds", "penalty",
        "alerts", "escalation", "retention", "triggers", "jobs", "handlers",
        "scheduler_tick_seconds",
    }
    if unknown:
        raise ConfigurationError("root", f"unknown sections {sorted(unknown)}")

    return replace(DEFAULT_CONFIG, **kwargs)


def load_config(path: Path | str | None = None) -> WorkflowConfig:
    """
    Load configuration from ``path`` or the ``TAXFLOW_CONFIG`` environment
    variable; with neither, return the defaults.

    ``TAXFLOW_DATABASE_URL`` overrides the database URL in every case.
    """
    resolved = path or os.environ.get(CONFIG_PATH_ENV)
    if resolved:
        config = parse_config(load_yaml_file(Path(resolved)))
    else:
        config = DEFAULT_CONFIG

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = replace(config, database_url=env_url)
    return config
