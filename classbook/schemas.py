from datetime import date, time
from typing import Literal

from pydantic import BaseModel, Field


class BookingCreateRequest(BaseModel):
    student_id: int
    date: date
    start_time: time
    duration_slots: int = Field(default=1, ge=1, le=3)
    program_id: int | None = None
    is_recurring: bool = False


class StudentBookingCreateRequest(BaseModel):
    date: date
    start_time: time
    duration_slots: int = Field(default=1, ge=1, le=3)
    program_id: int | None = None


class BookingUpdateRequest(BaseModel):
    student_id: int
    date: date
    start_time: time
    duration_slots: int = Field(default=1, ge=1, le=3)
    program_id: int | None = None
    scope: Literal['single', 'future'] = 'single'


class SettingUpdateRequest(BaseModel):
    key: Literal[
        'max_concurrent_students',
        'time_slot_interval_minutes',
        'notifications_enabled',
    ]
    value: int | bool
