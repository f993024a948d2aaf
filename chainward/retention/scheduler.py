"""
Retention scheduling.

Pure functions: whether a policy is due, and how long until it is. A policy
is due once the whole days elapsed since its last run reach the schedule's
interval; a policy that never ran is always due.
"""

from datetime import datetime, timezone
from typing import Optional, Union

from .policies import RetentionSchedule

SCHEDULE_INTERVAL_DAYS = {
    RetentionSchedule.DAILY: 1,
    RetentionSchedule.WEEKLY: 7,
    RetentionSchedule.MONTHLY: 30,
}

SECONDS_PER_DAY = 86400


def interval_days(schedule: Union[RetentionSchedule, str]) -> int:
    """Raises ValueError for an unknown schedule."""
    return SCHEDULE_INTERVAL_DAYS[RetentionSchedule(schedule)]


def _elapsed_days(last_run: datetime, now: Optional[datetime]) -> float:
    now = now or datetime.now(timezone.utc)
    if last_run.tzinfo is None:
        last_run = last_run.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - last_run).total_seconds() / SECONDS_PER_DAY


def is_due(
    schedule: Union[RetentionSchedule, str],
    last_run: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> bool:
    threshold = interval_days(schedule)
    if last_run is None:
        return True
    return int(_elapsed_days(last_run, now) // 1) >= threshold


def due_in_days(
    schedule: Union[RetentionSchedule, str],
    last_run: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> float:
    """Days until the policy is due again, never negative."""
    threshold = interval_days(schedule)
    if last_run is None:
        return 0.0
    return max(0.0, threshold - _elapsed_days(last_run, now))
