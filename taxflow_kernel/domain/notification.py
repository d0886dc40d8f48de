"""Notification request value object (``taxflow_kernel.domain.notification``)."""

from dataclasses import dataclass
from enum import Enum


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Notification:
    """A fully-formed request handed to the delivery channel."""

    recipient: str
    title: str
    message: str
    severity: Severity = Severity.INFO
