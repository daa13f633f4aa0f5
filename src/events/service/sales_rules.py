"""Sales start rules and their resolution to an absolute instant.

A session declares when its tickets go on sale with one of three rules:

- ``Immediate``: as soon as the session is put on the schedule.
- ``FixedAt``: at a fixed datetime.
- ``RollingHoursBefore``: a number of hours before the session starts.
"""

import typing as t
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.db import models
from django.utils import timezone

from events.exceptions import InvalidRuleError


class SalesStartRuleType(models.TextChoices):
    IMMEDIATE = "IMMEDIATE"
    FIXED = "FIXED"
    ROLLING = "ROLLING"


@dataclass(frozen=True)
class Immediate:
    pass


@dataclass(frozen=True)
class FixedAt:
    at: datetime


@dataclass(frozen=True)
class RollingHoursBefore:
    hours: int | None


SalesStartRule = Immediate | FixedAt | RollingHoursBefore


def rule_from_fields(
    rule_type: str,
    fixed_datetime: datetime | None = None,
    hours_before: int | None = None,
) -> SalesStartRule:
    """Build a rule from its stored columns.

    Raises:
        InvalidRuleError: if the rule type is unknown or a fixed rule has no datetime.
    """
    match rule_type:
        case SalesStartRuleType.IMMEDIATE:
            return Immediate()
        case SalesStartRuleType.FIXED:
            if fixed_datetime is None:
                raise InvalidRuleError("A fixed sales start datetime must be provided for a fixed sales rule.")
            return FixedAt(fixed_datetime)
        case SalesStartRuleType.ROLLING:
            return RollingHoursBefore(hours_before)
    raise InvalidRuleError(f"Unknown sales start rule type: {rule_type!r}")


def resolve_sales_start(rule: SalesStartRule, session_start_time: datetime, now: datetime | None = None) -> datetime:
    """Return the instant at which ticket sales open for a session.

    ``Immediate`` depends on the wall clock; pass ``now`` to pin it.

    Raises:
        InvalidRuleError: if a fixed rule does not open sales before the session
            starts, or a rolling rule has no (or a negative) number of hours.
    """
    match rule:
        case Immediate():
            return now or timezone.now()
        case FixedAt(at=at):
            if at >= session_start_time:
                raise InvalidRuleError("The sales start time must be before the session start time.")
            return at
        case RollingHoursBefore(hours=hours):
            if hours is None:
                raise InvalidRuleError("Sales start hours must be provided for rolling sales rule.")
            if hours < 0:
                raise InvalidRuleError("Sales start hours cannot be negative.")
            return session_start_time - timedelta(hours=hours)
        case _:
            t.assert_never(rule)
