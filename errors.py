"""Error taxonomy for the attendance ledger.

Validation errors raised at the collection-mutation boundary (``add``,
``update``, ``set_count`` and schedule edits) are subclasses of
:class:`CourseValidationError`. They carry the HTTP status and a short title so
the Flask layer can render them as problem details without a lookup table.

Lookup misses (unknown course, record or occurrence) are deliberately *not*
represented here: mutations triggered from notification actions have nobody to
report to, so those paths are silent no-ops.
"""

from __future__ import annotations


class AttendanceError(Exception):
    """Base class for all errors raised by the attendance ledger."""


class CourseValidationError(AttendanceError):
    """A requested change was rejected; the collection is left untouched."""

    status = 400
    title = "Invalid course"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidCourseId(CourseValidationError):
    title = "Invalid course id"


class DuplicateCourseId(CourseValidationError):
    status = 409
    title = "Duplicate course id"


class InvalidCountValue(CourseValidationError):
    title = "Invalid count value"


class ScheduleConflict(CourseValidationError):
    title = "Schedule conflict"


class PersistenceFailure(AttendanceError):
    """Loading from or saving to the key-value store failed."""

    def __init__(self, operation: str, key: str, cause: Exception) -> None:
        super().__init__(f"{operation} {key!r} failed: {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause


__all__ = [
    "AttendanceError",
    "CourseValidationError",
    "DuplicateCourseId",
    "InvalidCountValue",
    "InvalidCourseId",
    "PersistenceFailure",
    "ScheduleConflict",
]
