"""State-owning service for the course collection.

:class:`CourseStore` holds the current immutable snapshot of all courses and
is the only writer. Every mutation builds a new snapshot, swaps it in, then
persists it through the key-value collaborator. Persistence failures are
logged and never undo the in-memory change; the snapshot stays authoritative
for the rest of the session. Stored courses that fail validation on load are
set aside and written back unchanged, and nothing is saved over a collection
that could not be read at all.

Validation problems on ``add``/``update``/``set_count`` and schedule edits are
raised as :class:`errors.CourseValidationError` subclasses before anything is
changed. Lookups that miss (unknown course or record) return ``False``/``None``
instead of raising.
"""

from __future__ import annotations

import json
import re
import threading
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Optional, Tuple

from pydantic import ValidationError

import calculator
import ledger
from app_logging import StoreTimer, get_logger
from errors import DuplicateCourseId, InvalidCountValue, InvalidCourseId, PersistenceFailure, ScheduleConflict
from schedule import resolve_occurrences_for_date, slots_overlap
from schemas import COUNTER_FIELDS, ClassOccurrence, Course, ExtraClass, ScheduleItem, is_valid_course_id
from storage import KeyValueStore

Courses = Tuple[Course, ...]
ChangeCallback = Callable[[Courses], None]

_logger = get_logger("app.store")
_COUNT_PATTERN = re.compile(r"\d+")


def validate_course_id(course_id: str) -> str:
    """Return the trimmed id or raise :class:`InvalidCourseId`."""

    course_id = (course_id or "").strip()
    if not course_id:
        raise InvalidCourseId("Course ID is required.")
    if not is_valid_course_id(course_id):
        raise InvalidCourseId("Course ID must contain only numbers and alphabets.")
    return course_id


def parse_count(value) -> int:
    """Accept a non-negative integer, or a string of digits, as a counter value."""

    if isinstance(value, bool):
        raise InvalidCountValue("Please enter a valid non-negative number.")
    if isinstance(value, int):
        count = value
    elif isinstance(value, str) and _COUNT_PATTERN.fullmatch(value.strip()):
        count = int(value.strip())
    else:
        raise InvalidCountValue("Please enter a valid non-negative number.")
    if count < 0:
        raise InvalidCountValue("Please enter a valid non-negative number.")
    return count


def _check_weekly_schedule(items: Iterable[ScheduleItem]) -> None:
    seen: List[ScheduleItem] = []
    for item in items:
        for other in seen:
            if other.id == item.id:
                raise ScheduleConflict(f"Schedule item id {item.id!r} is used twice.")
            if other.day == item.day and slots_overlap(other, item):
                raise ScheduleConflict(
                    f"{item.day} {item.time_start}-{item.time_end} overlaps "
                    f"{other.time_start}-{other.time_end}."
                )
        seen.append(item)


class CourseStore:
    def __init__(
        self,
        store: KeyValueStore,
        courses_key: str = "courses",
        theme_key: str = "theme",
        default_theme: str = "light",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._courses_key = courses_key
        self._theme_key = theme_key
        self._default_theme = default_theme
        self._clock = clock
        self._lock = threading.RLock()
        self._courses: Courses = ()
        self._theme = default_theme
        self._today: Optional[Tuple[date, List[ClassOccurrence]]] = None
        self._callbacks: List[ChangeCallback] = []
        self._quarantined: List[Any] = []
        self._load_failed = False
        self.loaded = False

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def courses(self) -> Courses:
        return self._courses

    @property
    def theme(self) -> str:
        return self._theme

    def get(self, course_id: str) -> Optional[Course]:
        index = ledger.find_course_index(self._courses, course_id)
        return None if index is None else self._courses[index]

    def list_courses(self, include_archived: bool = False) -> List[Course]:
        return [c for c in self._courses if include_archived or not c.is_archived]

    def archived_courses(self) -> List[Course]:
        return [c for c in self._courses if c.is_archived]

    def todays_classes(self, on: Optional[date] = None) -> List[ClassOccurrence]:
        """Occurrences for ``on`` (default: today), ordered by start time."""

        day = on or self._clock().date()
        cached = self._today
        if cached is not None and cached[0] == day:
            return list(cached[1])
        return resolve_occurrences_for_date(self._courses, day)

    def register_change_callback(self, callback: ChangeCallback) -> None:
        """Call ``callback(courses)`` after load and after every committed change."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read the collection and theme; missing data means defaults.

        Courses that no longer validate are kept aside, untouched, and written
        back with every save. If the store itself cannot be read, the session
        starts empty and the stored collection is not overwritten until a
        later load succeeds or the data is cleared.
        """

        with self._lock:
            courses: List[Course] = []
            quarantined: List[Any] = []
            theme = self._default_theme
            load_failed = False
            try:
                with StoreTimer():
                    raw_courses = self._store.get(self._courses_key)
                    raw_theme = self._store.get(self._theme_key)
                if raw_courses:
                    entries = json.loads(raw_courses)
                    if not isinstance(entries, list):
                        raise ValueError("stored courses are not a list")
                    for entry in entries:
                        try:
                            courses.append(Course.model_validate(entry))
                        except ValidationError as exc:
                            quarantined.append(entry)
                            course_id = entry.get("id") if isinstance(entry, dict) else None
                            _logger.warning(
                                "stored course skipped",
                                extra={"course_id": course_id, "error": str(exc)},
                            )
                if raw_theme:
                    theme = raw_theme
            except Exception as exc:
                courses, quarantined, load_failed = [], [], True
                failure = PersistenceFailure("load", self._courses_key, exc)
                _logger.error(str(failure), exc_info=True)
            self._courses = tuple(courses)
            self._quarantined = quarantined
            self._load_failed = load_failed
            self._theme = theme
            self.loaded = True
            _logger.info(
                "courses loaded",
                extra={"course_count": len(courses), "skipped_count": len(quarantined)},
            )
            self._after_change()

    def _write(self, key: str, value: str) -> None:
        try:
            with StoreTimer():
                self._store.set(key, value)
        except Exception as exc:
            failure = PersistenceFailure("save", key, exc)
            _logger.error(str(failure), exc_info=True)

    def _commit(self, courses: Courses) -> None:
        self._courses = courses
        self._after_change()
        if self._load_failed:
            _logger.warning("save skipped: stored courses were never loaded", extra={"course_count": len(courses)})
            return
        entries = [course.to_json() for course in courses] + self._quarantined
        self._write(self._courses_key, json.dumps(entries, separators=(",", ":")))

    def _after_change(self) -> None:
        day = self._clock().date()
        self._today = (day, resolve_occurrences_for_date(self._courses, day))
        for callback in list(self._callbacks):
            try:
                callback(self._courses)
            except Exception:
                _logger.exception("change callback failed")

    def _apply(self, updated: Courses) -> bool:
        if updated is self._courses:
            return False
        self._commit(updated)
        return True

    def _replace_at(self, index: int, course: Course) -> Courses:
        return self._courses[:index] + (course,) + self._courses[index + 1:]

    # ------------------------------------------------------------------
    # Course collection
    # ------------------------------------------------------------------

    def add(self, course: Course) -> Course:
        with self._lock:
            course_id = validate_course_id(course.id)
            if ledger.find_course_index(self._courses, course_id) is not None:
                raise DuplicateCourseId("A course with this ID already exists. Please use a different ID.")
            _check_weekly_schedule(course.weekly_schedule)

            course = course.model_copy(
                update={
                    "id": course_id,
                    "attendance_percentage": calculator.percentage(course.presents, course.absents),
                }
            )
            self._commit(self._courses + (course,))
            _logger.info("course added", extra={"course_id": course_id})
            return course

    def update(self, course: Course, original_id: Optional[str] = None) -> Optional[Course]:
        """Replace the course found by ``original_id`` (default ``course.id``).

        The new id may differ from the old one as long as no *other* course
        already uses it.
        """

        with self._lock:
            course_id = validate_course_id(course.id)
            index = ledger.find_course_index(self._courses, original_id or course_id)
            if index is None:
                return None
            for position, other in enumerate(self._courses):
                if position != index and other.matches(course_id):
                    raise DuplicateCourseId("A course with this ID already exists. Please use a different ID.")
            _check_weekly_schedule(course.weekly_schedule)

            course = course.model_copy(
                update={
                    "id": course_id,
                    "attendance_percentage": calculator.percentage(course.presents, course.absents),
                }
            )
            self._commit(self._replace_at(index, course))
            _logger.info("course updated", extra={"course_id": course_id})
            return course

    def delete(self, course_id: str) -> bool:
        with self._lock:
            index = ledger.find_course_index(self._courses, course_id)
            if index is None:
                return False
            self._commit(self._courses[:index] + self._courses[index + 1:])
            _logger.info("course deleted", extra={"course_id": course_id})
            return True

    def _set_archived(self, course_id: str, archived: bool) -> bool:
        with self._lock:
            index = ledger.find_course_index(self._courses, course_id)
            if index is None:
                return False
            course = self._courses[index]
            self._commit(self._replace_at(index, course.model_copy(update={"is_archived": archived})))
            return True

    def archive(self, course_id: str) -> bool:
        return self._set_archived(course_id, True)

    def unarchive(self, course_id: str) -> bool:
        return self._set_archived(course_id, False)

    def set_count(self, course_id: str, field: str, value) -> Optional[Course]:
        """Overwrite one counter by hand and refresh the percentage."""

        if field not in COUNTER_FIELDS:
            raise InvalidCountValue(f"Unknown counter {field!r}; expected one of {', '.join(COUNTER_FIELDS)}.")
        count = parse_count(value)
        with self._lock:
            index = ledger.find_course_index(self._courses, course_id)
            if index is None:
                return None
            course = self._courses[index].model_copy(update={field: count})
            course = course.model_copy(
                update={"attendance_percentage": calculator.percentage(course.presents, course.absents)}
            )
            self._commit(self._replace_at(index, course))
            _logger.info("counter overwritten", extra={"course_id": course.id, "counter": field, "value": count})
            return course

    def add_schedule_item(self, course_id: str, item: ScheduleItem) -> Optional[Course]:
        with self._lock:
            index = ledger.find_course_index(self._courses, course_id)
            if index is None:
                return None
            course = self._courses[index]
            schedule = course.weekly_schedule + (item,)
            _check_weekly_schedule(schedule)
            course = course.model_copy(update={"weekly_schedule": schedule})
            self._commit(self._replace_at(index, course))
            return course

    def add_extra_class(self, course_id: str, on: str, time_start: str, time_end: str) -> Optional[ExtraClass]:
        extra = ExtraClass(date=on, time_start=time_start, time_end=time_end)
        with self._lock:
            index = ledger.find_course_index(self._courses, course_id)
            if index is None:
                return None
            course = self._courses[index]
            course = course.model_copy(update={"extra_classes": course.extra_classes + (extra,)})
            self._commit(self._replace_at(index, course))
            return extra

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------

    def mark_attendance(
        self, course_id: str, status: str, is_extra_class: bool, occurrence_id: Optional[str] = None
    ) -> bool:
        """Mark today's occurrence; returns ``False`` when nothing changed."""

        with self._lock:
            return self._apply(
                ledger.mark_attendance(
                    self._courses, course_id, status, is_extra_class, occurrence_id, now=self._clock()
                )
            )

    def change_record_status(self, course_id: str, record_id: str, new_status: str) -> bool:
        with self._lock:
            return self._apply(ledger.change_record_status(self._courses, course_id, record_id, new_status))

    def recount(self, course_id: str) -> bool:
        with self._lock:
            return self._apply(ledger.reconcile_counters(self._courses, course_id))

    # ------------------------------------------------------------------
    # Preferences and reset
    # ------------------------------------------------------------------

    def set_theme(self, theme: str) -> None:
        with self._lock:
            self._theme = theme
            self._write(self._theme_key, theme)

    def toggle_theme(self) -> str:
        with self._lock:
            self.set_theme("dark" if self._theme == "light" else "light")
            return self._theme

    def clear_data(self) -> None:
        """Remove both persisted keys and reset to an empty collection."""

        with self._lock:
            for key in (self._courses_key, self._theme_key):
                try:
                    with StoreTimer():
                        self._store.delete(key)
                except Exception as exc:
                    _logger.error(str(PersistenceFailure("clear", key, exc)), exc_info=True)
            self._courses = ()
            self._theme = self._default_theme
            self._quarantined = []
            self._load_failed = False
            self._after_change()
            _logger.info("data cleared")


__all__ = ["CourseStore", "parse_count", "validate_course_id"]
