"""Entry point for actions chosen on a class-reminder notification.

A reminder carries ``{courseId, scheduleItemId, isExtraClass}`` in its data
payload and offers three action buttons named after the attendance statuses.
Choosing one must behave exactly like marking attendance from the UI, so this
module only unpacks the payload and forwards it to
:meth:`course_store.CourseStore.mark_attendance`.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from app_logging import get_logger
from course_store import CourseStore
from schemas import STATUSES

DEFAULT_ACTION = "default"

_logger = get_logger("app.notifications")


def handle_notification_action(store: CourseStore, action: str, data: Optional[Mapping[str, Any]]) -> bool:
    """Apply a notification action; returns ``True`` if attendance changed.

    Incomplete payloads and unknown actions are logged and ignored: the
    handler runs without a screen to report problems on.
    """

    if not isinstance(data, Mapping) or not data.get("courseId") or "scheduleItemId" not in data:
        _logger.warning("notification response without expected data", extra={"notification_data": data})
        return False

    course_id = str(data["courseId"])
    schedule_item_id = data.get("scheduleItemId")
    is_extra_class = data.get("isExtraClass", False)
    if not isinstance(is_extra_class, bool):
        _logger.warning("notification flag is not a boolean", extra={"course_id": course_id, "is_extra_class": is_extra_class})
        return False

    if action == DEFAULT_ACTION:
        _logger.info("notification tapped", extra={"course_id": course_id})
        return False
    if action not in STATUSES:
        _logger.warning("unknown notification action", extra={"course_id": course_id, "action": action})
        return False

    return store.mark_attendance(
        course_id,
        action,
        is_extra_class,
        None if schedule_item_id is None else str(schedule_item_id),
    )


__all__ = ["DEFAULT_ACTION", "handle_notification_action"]
