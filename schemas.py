"""Domain schemas for the attendance ledger.

Every entity is an immutable pydantic model. The JSON form (used both for the
persisted course collection and for the HTTP API) keeps the camelCase field
names of the mobile client, including two literal artifacts that must not be
"fixed": the record status is stored under ``Status`` and the record timestamp
under ``data``.

* :class:`ScheduleItem` – a recurring weekly slot of a course.
* :class:`ExtraClass` – a one-off slot on a specific date.
* :class:`AttendanceRecord` – one outcome for one occurrence on one day.
* :class:`Course` – a tracked subject with its counters and history.
* :class:`ClassOccurrence` – a concrete class meeting derived for a date.
"""

from __future__ import annotations

import re
import uuid
from datetime import date
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Status = Literal["present", "absent", "cancelled"]
STATUSES: Tuple[str, ...] = ("present", "absent", "cancelled")
COUNTER_FIELDS: Tuple[str, ...] = ("presents", "absents", "cancelled")

# Status value -> Course counter attribute
COUNTER_FOR_STATUS = dict(zip(STATUSES, COUNTER_FIELDS))

Weekday = Literal["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
WEEKDAYS: Tuple[str, ...] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

DEFAULT_REQUIRED_ATTENDANCE = 75

COURSE_ID_PATTERN = re.compile(r"[a-zA-Z0-9]*")
_TIME_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"
_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def is_valid_course_id(course_id: str) -> bool:
    """Return ``True`` if ``course_id`` contains only ASCII letters and digits.

    The empty string passes this predicate; callers that require a value must
    reject it separately.
    """

    return COURSE_ID_PATTERN.fullmatch(course_id) is not None


def new_id() -> str:
    return uuid.uuid4().hex


def clock_minutes(value: str) -> int:
    """Convert an ``HH:MM`` wall-clock string to minutes after midnight."""

    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class _TimedSlot(_Schema):
    id: str = Field(default_factory=new_id)
    time_start: str = Field(pattern=_TIME_PATTERN)
    time_end: str = Field(pattern=_TIME_PATTERN)

    @model_validator(mode="after")
    def _check_time_order(self):
        if clock_minutes(self.time_start) >= clock_minutes(self.time_end):
            raise ValueError(
                f"timeStart {self.time_start} must be before timeEnd {self.time_end}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return clock_minutes(self.time_start)

    @property
    def end_minutes(self) -> int:
        return clock_minutes(self.time_end)


class ScheduleItem(_TimedSlot):
    """A recurring weekly slot, e.g. every Monday 09:00-10:00."""

    day: Weekday


class ExtraClass(_TimedSlot):
    """A one-off slot on ``date`` (``YYYY-MM-DD``)."""

    date: str = Field(pattern=_DATE_PATTERN)

    @field_validator("date")
    @classmethod
    def _check_calendar_date(cls, value: str) -> str:
        date.fromisoformat(value)
        return value


class AttendanceRecord(_Schema):
    """The outcome of one class occurrence on one calendar day.

    ``data`` is an ISO-8601 timestamp; only its date component matters for
    identifying the occurrence.
    """

    id: str = Field(default_factory=new_id)
    data: str
    status: Status = Field(alias="Status")
    is_extra_class: bool = False
    schedule_item_id: Optional[str] = None

    @field_validator("data")
    @classmethod
    def _check_timestamp(cls, value: str) -> str:
        date.fromisoformat(value[:10])
        return value

    @property
    def day(self) -> date:
        return date.fromisoformat(self.data[:10])


class Course(_Schema):
    """One tracked subject.

    ``presents``/``absents``/``cancelled`` mirror the attendance records and
    ``attendance_percentage`` is derived from the first two; both are
    maintained by the ledger, never edited independently of it except through
    the explicit manual counter correction.
    """

    id: str
    name: str = Field(min_length=1)
    required_attendance: int = Field(DEFAULT_REQUIRED_ATTENDANCE, ge=0, le=100)
    presents: int = Field(0, ge=0)
    absents: int = Field(0, ge=0)
    cancelled: int = Field(0, ge=0)
    attendance_percentage: int = Field(100, ge=0, le=100)
    weekly_schedule: Tuple[ScheduleItem, ...] = ()
    extra_classes: Tuple[ExtraClass, ...] = ()
    attendance_records: Tuple[AttendanceRecord, ...] = ()
    is_archived: bool = False

    @field_validator("weekly_schedule", "extra_classes", "attendance_records", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # Older clients persisted missing collections as null.
        return () if value is None else value

    def matches(self, course_id: str) -> bool:
        """Case-insensitive identity comparison."""
        return self.id.lower() == course_id.lower()


class ClassOccurrence(_Schema):
    """A class meeting happening on a specific date."""

    id: str
    course_id: str
    course_name: str
    schedule_item_id: str
    time_start: str
    time_end: str
    is_extra_class: bool
    required_attendance: int
    current_attendance: int
    need_to_attend: int
    marked_status: Optional[Status] = None


__all__ = [
    "AttendanceRecord",
    "COUNTER_FIELDS",
    "COUNTER_FOR_STATUS",
    "ClassOccurrence",
    "Course",
    "DEFAULT_REQUIRED_ATTENDANCE",
    "ExtraClass",
    "STATUSES",
    "ScheduleItem",
    "Status",
    "WEEKDAYS",
    "clock_minutes",
    "is_valid_course_id",
    "new_id",
]
