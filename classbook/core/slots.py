from __future__ import annotations

from dataclasses import dataclass
from datetime import time, timedelta


SLOT_HOURS = 3
FIRST_SLOT_HOUR = 9
LAST_SLOT_HOUR = 20


@dataclass(frozen=True)
class DurationOption:
    slots: int
    label: str
    hours: int


DURATION_OPTIONS: tuple[DurationOption, ...] = tuple(
    DurationOption(slots=count, label=f'{count} slot ({count * SLOT_HOURS}h)', hours=count * SLOT_HOURS)
    for count in (1, 2, 3)
)


def duration_for_slots(duration_slots: int) -> timedelta:
    for option in DURATION_OPTIONS:
        if option.slots == int(duration_slots):
            return timedelta(hours=option.hours)
    raise ValueError('duration_slots must be 1, 2 or 3')


def parse_hhmm(value: str) -> time:
    hh, mm = value.split(':', 1)
    hour = int(hh)
    minute = int(mm)
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValueError('Invalid HH:MM time')
    return time(hour=hour, minute=minute)


def generate_time_slots(interval_minutes: int = 30) -> list[str]:
    """Bookable start times from 09:00 through 20:00 inclusive."""
    step = max(5, min(60, int(interval_minutes or 30)))
    slots: list[str] = []
    minutes = FIRST_SLOT_HOUR * 60
    while minutes <= LAST_SLOT_HOUR * 60:
        slots.append(f'{minutes // 60:02d}:{minutes % 60:02d}')
        minutes += step
    return slots
