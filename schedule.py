"""Derivation of the classes happening on a given calendar day."""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

import calculator
from schemas import WEEKDAYS, AttendanceRecord, ClassOccurrence, Course, clock_minutes


def weekday_name(day: date) -> str:
    """Return the English weekday name (``Sunday`` .. ``Saturday``) of ``day``."""

    # date.weekday() is 0 for Monday; WEEKDAYS starts on Sunday.
    return WEEKDAYS[(day.weekday() + 1) % 7]


def slots_overlap(first, second) -> bool:
    """Return ``True`` when two timed slots overlap as half-open intervals."""

    return first.start_minutes < second.end_minutes and second.start_minutes < first.end_minutes


def _marked_status(
    records: Iterable[AttendanceRecord], day: date, is_extra_class: bool, slot_id: str
) -> Optional[str]:
    for record in records:
        if (
            record.day == day
            and record.is_extra_class == is_extra_class
            and record.schedule_item_id == slot_id
        ):
            return record.status
    return None


def resolve_occurrences_for_date(courses: Iterable[Course], day: date) -> List[ClassOccurrence]:
    """Return the class occurrences of non-archived ``courses`` on ``day``.

    Weekly slots match on the weekday name, extra classes on the exact date.
    The result is ordered by start time; equal start times keep encounter
    order (courses in collection order, weekly slots before extra classes).
    """

    day_name = weekday_name(day)
    day_iso = day.isoformat()
    occurrences: List[ClassOccurrence] = []

    for course in courses:
        if course.is_archived:
            continue

        current = calculator.percentage(course.presents, course.absents)
        need = calculator.delta(course.presents, course.absents, course.required_attendance)

        slots = [(item, False) for item in course.weekly_schedule if item.day == day_name]
        slots += [(extra, True) for extra in course.extra_classes if extra.date == day_iso]

        for slot, is_extra in slots:
            occurrence_id = (
                f"{course.id}-extra-{slot.id}" if is_extra else f"{course.id}-{slot.id}"
            )
            occurrences.append(
                ClassOccurrence(
                    id=occurrence_id,
                    course_id=course.id,
                    course_name=course.name,
                    schedule_item_id=slot.id,
                    time_start=slot.time_start,
                    time_end=slot.time_end,
                    is_extra_class=is_extra,
                    required_attendance=course.required_attendance,
                    current_attendance=current,
                    need_to_attend=need,
                    marked_status=_marked_status(
                        course.attendance_records, day, is_extra, slot.id
                    ),
                )
            )

    # list.sort is stable, which preserves encounter order for ties.
    occurrences.sort(key=lambda occurrence: clock_minutes(occurrence.time_start))
    return occurrences


__all__ = ["resolve_occurrences_for_date", "slots_overlap", "weekday_name"]
