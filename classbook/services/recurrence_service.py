"""Weekly recurrence expansion and the rrule strings stored on series roots.

Only ``FREQ=WEEKLY;INTERVAL=1;UNTIL=YYYYMMDD`` is supported. Occurrences
keep the KST wall-clock time of the first booking and the until date is
inclusive.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from classbook.core import kst


WEEK_DAYS = 7
_RRULE_RE = re.compile(r'^FREQ=WEEKLY;INTERVAL=1;UNTIL=(\d{4})(\d{2})(\d{2})$')


def expand_weekly(first_start: datetime, until_date: date) -> list[datetime]:
    parts = kst.to_components(first_start)
    occurrences = [first_start]
    week = 1
    while True:
        candidate = kst.from_components(
            parts.year,
            parts.month,
            parts.day + week * WEEK_DAYS,
            parts.hour,
            parts.minute,
            parts.second,
            parts.microsecond,
        )
        if kst.kst_date(candidate) > until_date:
            break
        occurrences.append(candidate)
        week += 1
    return occurrences


def build_weekly_rrule(until_date: date) -> str:
    return f'FREQ=WEEKLY;INTERVAL=1;UNTIL={until_date:%Y%m%d}'


def parse_weekly_rrule(rrule: str) -> date:
    """Return the inclusive until date of a weekly rrule."""
    match = _RRULE_RE.match((rrule or '').strip())
    if not match:
        raise ValueError(f'Unsupported recurrence rule: {rrule!r}')
    year, month, day = (int(group) for group in match.groups())
    return date(year, month, day)
