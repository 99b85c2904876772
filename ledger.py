"""Attendance mutations.

Each function takes the current course snapshot (a tuple) and returns the new
snapshot. When nothing changes the *same* tuple object is returned so callers
can cheaply tell a no-op apart from a real change.

Unknown courses, unknown records and unknown statuses are silent no-ops: the
same entry points serve notification actions, which run in the background and
have no way to show an error to the user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Tuple

import calculator
from app_logging import get_logger
from schemas import COUNTER_FIELDS, COUNTER_FOR_STATUS, STATUSES, AttendanceRecord, Course

Courses = Tuple[Course, ...]

_logger = get_logger("app.ledger")


def find_course_index(courses: Courses, course_id: str) -> Optional[int]:
    for index, course in enumerate(courses):
        if course.matches(course_id):
            return index
    return None


def _replace(courses: Courses, index: int, course: Course) -> Courses:
    return courses[:index] + (course,) + courses[index + 1:]


def _shifted_counters(course: Course, old_status: Optional[str], new_status: str) -> Dict[str, int]:
    counters = {field: getattr(course, field) for field in COUNTER_FIELDS}
    if old_status is not None:
        counters[COUNTER_FOR_STATUS[old_status]] -= 1
    counters[COUNTER_FOR_STATUS[new_status]] += 1
    return {field: max(0, value) for field, value in counters.items()}


def _with_records(course: Course, records, counters: Dict[str, int]) -> Course:
    return course.model_copy(
        update={
            **counters,
            "attendance_records": tuple(records),
            "attendance_percentage": calculator.percentage(
                counters["presents"], counters["absents"]
            ),
        }
    )


def mark_attendance(
    courses: Courses,
    course_id: str,
    status: str,
    is_extra_class: bool,
    occurrence_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Courses:
    """Record ``status`` for one occurrence of ``course_id`` today.

    At most one record exists per (course, day, is_extra_class, occurrence_id);
    marking the same occurrence again on the same day updates that record, and
    marking it with the status it already has changes nothing.
    """

    if status not in STATUSES:
        _logger.warning("mark ignored: unknown status", extra={"course_id": course_id, "status_value": status})
        return courses

    index = find_course_index(courses, course_id)
    if index is None:
        _logger.info("mark ignored: course not found", extra={"course_id": course_id})
        return courses

    now = now or datetime.now()
    today = now.date()
    course = courses[index]
    records = list(course.attendance_records)

    old_status = None
    for position, record in enumerate(records):
        if (
            record.day == today
            and record.is_extra_class == is_extra_class
            and record.schedule_item_id == occurrence_id
        ):
            if record.status == status:
                return courses
            old_status = record.status
            records[position] = record.model_copy(update={"status": status})
            break
    else:
        records.append(
            AttendanceRecord(
                data=now.isoformat(timespec="milliseconds"),
                status=status,
                is_extra_class=is_extra_class,
                schedule_item_id=occurrence_id,
            )
        )

    updated = _with_records(course, records, _shifted_counters(course, old_status, status))
    _logger.info(
        "attendance marked",
        extra={
            "course_id": course.id,
            "occurrence_id": occurrence_id,
            "is_extra_class": is_extra_class,
            "old_status": old_status,
            "new_status": status,
        },
    )
    return _replace(courses, index, updated)


def change_record_status(
    courses: Courses, course_id: str, record_id: str, new_status: str
) -> Courses:
    """Correct a historical record, addressed by its own id."""

    if new_status not in STATUSES:
        _logger.warning("record change ignored: unknown status", extra={"course_id": course_id, "status_value": new_status})
        return courses

    index = find_course_index(courses, course_id)
    if index is None:
        return courses

    course = courses[index]
    records = list(course.attendance_records)
    for position, record in enumerate(records):
        if record.id == record_id:
            break
    else:
        _logger.info("record change ignored: record not found", extra={"course_id": course_id, "record_id": record_id})
        return courses

    old_status = records[position].status
    if old_status == new_status:
        return courses
    records[position] = records[position].model_copy(update={"status": new_status})

    updated = _with_records(course, records, _shifted_counters(course, old_status, new_status))
    return _replace(courses, index, updated)


def reconcile_counters(courses: Courses, course_id: str) -> Courses:
    """Reset a course's counters to the tally of its attendance records."""

    index = find_course_index(courses, course_id)
    if index is None:
        return courses

    course = courses[index]
    presents, absents, cancelled = calculator.tally(course.attendance_records)
    counters = {"presents": presents, "absents": absents, "cancelled": cancelled}
    if all(getattr(course, field) == value for field, value in counters.items()):
        return courses
    _logger.info(
        "counters reconciled",
        extra={"course_id": course.id, **{f"previous_{f}": getattr(course, f) for f in counters}},
    )
    return _replace(courses, index, _with_records(course, course.attendance_records, counters))


__all__ = ["change_record_status", "find_course_index", "mark_attendance", "reconcile_counters"]
