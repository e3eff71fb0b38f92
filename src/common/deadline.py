from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Union

from state.models import Deadline


EXPIRED_LABEL = "已過期"
DAYS_SUFFIX = "天後"


@dataclass(frozen=True)
class DeadlineInfo:
    display: str  # countdown "HH:MM", "<n>天後", or EXPIRED_LABEL
    tooltip: str  # "<month>月<day>日 <hour>時"
    is_expired: bool


def _int_or(value: Any, default: int) -> int:
    # Missing, non-numeric and zero components fall back to the default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n or default


def deadline_instant(deadline: Union[Deadline, Mapping[str, Any]], *, now: Optional[datetime] = None) -> datetime:
    """Resolve a stored deadline to a naive local wall-clock datetime.

    Components are never UTC-normalized. Out-of-range months, days and hours
    roll over into the next unit instead of raising; values beyond the
    representable calendar resolve to midnight of `now`'s day.
    """
    if now is None:
        now = datetime.now()
    if isinstance(deadline, Deadline):
        date_str, hour = deadline.date, deadline.hour
    else:
        date_str, hour = deadline.get("date"), deadline.get("hour")

    parts = str(date_str or "").split("-")
    year = _int_or(parts[0] if len(parts) > 0 else None, now.year)
    month = _int_or(parts[1] if len(parts) > 1 else None, now.month)
    day = _int_or(parts[2] if len(parts) > 2 else None, now.day)
    try:
        hour = int(hour) if hour is not None else 0
    except (TypeError, ValueError):
        hour = 0

    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        return datetime(year, month, 1) + timedelta(days=day - 1, hours=hour)
    except (ValueError, OverflowError):
        # Outside the representable calendar: fall back to midnight today
        return datetime(now.year, now.month, now.day)


def compute_deadline_info(
    deadline: Union[Deadline, Mapping[str, Any]],
    *,
    now: Optional[datetime] = None,
) -> DeadlineInfo:
    """
    Countdown text for a card deadline.

    - Expired (deadline before `now`): EXPIRED_LABEL.
    - Under 24 hours left: zero-padded "HH:MM" (truncated, not rounded).
    - Otherwise: whole days left, e.g. "2天後".

    The tooltip always shows the deadline itself. `now` defaults to the
    current local time; pass it explicitly for deterministic results.
    """
    if now is None:
        now = datetime.now()
    target = deadline_instant(deadline, now=now)
    tooltip = f"{target.month}月{target.day}日 {target.hour}時"

    diff_hours = (target - now).total_seconds() / 3600
    if diff_hours < 0:
        return DeadlineInfo(display=EXPIRED_LABEL, tooltip=tooltip, is_expired=True)

    if diff_hours < 24:
        hours = math.floor(diff_hours)
        minutes = math.floor((diff_hours - hours) * 60)
        return DeadlineInfo(display=f"{hours:02d}:{minutes:02d}", tooltip=tooltip, is_expired=False)

    days = math.floor(diff_hours / 24)
    return DeadlineInfo(display=f"{days}{DAYS_SUFFIX}", tooltip=tooltip, is_expired=False)
