"""Flask application exposing the attendance ledger as a JSON API.

The application owns a single :class:`course_store.CourseStore`, created by
the factory and loaded from the key-value table before the first request.
Screens and notification handlers both talk to that store through the
endpoints below.

Endpoints:

* ``GET /api/courses?archived=false|true|all`` – list courses.
* ``POST /api/courses`` – add a course (409 if the id is taken).
* ``GET /api/courses/<id>`` – course with percentage, delta and history.
* ``PUT /api/courses/<id>`` – replace a course, optionally renaming it.
* ``DELETE /api/courses/<id>`` – delete a course.
* ``POST /api/courses/<id>/archive`` and ``/unarchive``.
* ``PUT /api/courses/<id>/counts/<field>`` – overwrite a counter by hand.
* ``POST /api/courses/<id>/recount`` – reset counters from the records.
* ``POST /api/courses/<id>/schedule`` – add a weekly slot.
* ``POST /api/courses/<id>/extra-classes`` – add a one-off class.
* ``PUT /api/courses/<id>/records/<record_id>`` – correct a past record.
* ``GET /api/today?date=YYYY-MM-DD`` – classes happening on a date.
* ``POST /api/attendance`` – mark today's occurrence of a class.
* ``POST /api/notifications/action`` – reminder action button pressed.
* ``GET|PUT /api/theme`` and ``POST /api/theme/toggle``.
* ``POST /api/clear`` – delete all data.

Mutations addressing a course or record that does not exist answer
``{"updated": false}`` rather than an error. Rejected input is reported as
RFC 7807 problem details.
"""

from __future__ import annotations

import json
import os
from datetime import date
from typing import Any, Dict, Mapping, Optional

from flask import Flask, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest, HTTPException, NotFound

import calculator
from app_logging import configure_logging, get_logger
from config import Config
from correlation_id_middleware import current_request_id, init_correlation_id
from course_store import CourseStore
from db_utils import create_tables
from errors import CourseValidationError
from models import db
from notifications import handle_notification_action
from request_logging_middleware import init_request_logging
from schemas import STATUSES, Course, ScheduleItem
from storage import KeyValueStore, SQLAlchemyStore

_logger = get_logger("app.api")


def _problem(status: int, title: str, detail: str, **extra: Any):
    body = {
        "type": "about:blank",
        "title": title,
        "status": status,
        "detail": detail,
        "request_id": current_request_id(),
    }
    body.update(extra)
    response = jsonify(body)
    response.status_code = status
    response.mimetype = "application/problem+json"
    return response


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Missing JSON payload")
    return data


def _status_from(data: Mapping[str, Any], key: str = "status") -> str:
    status = data.get(key)
    if status not in STATUSES:
        raise BadRequest(f"{key} must be one of: {', '.join(STATUSES)}")
    return status


def _course_detail(course: Course) -> Dict[str, Any]:
    history = sorted(course.attendance_records, key=lambda record: record.data, reverse=True)
    return {
        **course.to_json(),
        "attendancePercentage": calculator.percentage(course.presents, course.absents),
        "delta": calculator.delta(course.presents, course.absents, course.required_attendance),
        "history": [record.to_json() for record in history],
    }


def _not_updated():
    return jsonify({"updated": False})


def create_app(test_config: Optional[Mapping[str, Any]] = None, store: Optional[KeyValueStore] = None) -> Flask:
    """Application factory used by both the server and tests.

    ``test_config`` overrides :class:`config.Config`; ``store`` replaces the
    database-backed key-value store (tests pass an in-memory one).
    """
    configure_logging()
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    db.init_app(app)
    init_correlation_id(app)
    init_request_logging(app)

    course_store = CourseStore(
        store if store is not None else SQLAlchemyStore(),
        courses_key=app.config['COURSES_KEY'],
        theme_key=app.config['THEME_KEY'],
        default_theme=app.config['DEFAULT_THEME'],
    )
    with app.app_context():
        create_tables(db, attempts=app.config['STARTUP_DB_ATTEMPTS'])
        course_store.load()
    app.extensions['course_store'] = course_store

    @app.route('/health')
    def healthcheck():
        return jsonify({'status': 'ok', 'loaded': course_store.loaded}), 200

    # Courses
    @app.route('/api/courses', methods=['GET'])
    def api_list_courses():
        archived = request.args.get('archived', 'false').lower()
        if archived == 'all':
            courses = course_store.list_courses(include_archived=True)
        elif archived == 'true':
            courses = course_store.archived_courses()
        elif archived == 'false':
            courses = course_store.list_courses()
        else:
            raise BadRequest('archived must be true, false or all')
        return jsonify([course.to_json() for course in courses])

    @app.route('/api/courses', methods=['POST'])
    def api_add_course():
        course = course_store.add(Course.model_validate(_json_body()))
        return jsonify(course.to_json()), 201

    @app.route('/api/courses/<course_id>', methods=['GET'])
    def api_get_course(course_id: str):
        course = course_store.get(course_id)
        if course is None:
            raise NotFound(f'No course with id {course_id}')
        return jsonify(_course_detail(course))

    @app.route('/api/courses/<course_id>', methods=['PUT'])
    def api_update_course(course_id: str):
        data = _json_body()
        data.setdefault('id', course_id)
        course = course_store.update(Course.model_validate(data), original_id=course_id)
        if course is None:
            return _not_updated()
        return jsonify(course.to_json())

    @app.route('/api/courses/<course_id>', methods=['DELETE'])
    def api_delete_course(course_id: str):
        return jsonify({'updated': course_store.delete(course_id)})

    @app.route('/api/courses/<course_id>/archive', methods=['POST'])
    def api_archive_course(course_id: str):
        return jsonify({'updated': course_store.archive(course_id)})

    @app.route('/api/courses/<course_id>/unarchive', methods=['POST'])
    def api_unarchive_course(course_id: str):
        return jsonify({'updated': course_store.unarchive(course_id)})

    @app.route('/api/courses/<course_id>/counts/<field>', methods=['PUT'])
    def api_set_count(course_id: str, field: str):
        course = course_store.set_count(course_id, field, _json_body().get('value'))
        if course is None:
            return _not_updated()
        return jsonify(course.to_json())

    @app.route('/api/courses/<course_id>/recount', methods=['POST'])
    def api_recount(course_id: str):
        return jsonify({'updated': course_store.recount(course_id)})

    # Schedule
    @app.route('/api/courses/<course_id>/schedule', methods=['POST'])
    def api_add_schedule_item(course_id: str):
        item = ScheduleItem.model_validate(_json_body())
        course = course_store.add_schedule_item(course_id, item)
        if course is None:
            return _not_updated()
        return jsonify(item.to_json()), 201

    @app.route('/api/courses/<course_id>/extra-classes', methods=['POST'])
    def api_add_extra_class(course_id: str):
        data = _json_body()
        extra = course_store.add_extra_class(
            course_id, data.get('date'), data.get('timeStart'), data.get('timeEnd')
        )
        if extra is None:
            return _not_updated()
        return jsonify(extra.to_json()), 201

    @app.route('/api/today', methods=['GET'])
    def api_today():
        date_str = request.args.get('date')
        on = None
        if date_str:
            try:
                on = date.fromisoformat(date_str)
            except ValueError:
                raise BadRequest('Invalid date format, must be YYYY-MM-DD')
        return jsonify([occurrence.to_json() for occurrence in course_store.todays_classes(on)])

    # Attendance
    @app.route('/api/attendance', methods=['POST'])
    def api_mark_attendance():
        data = _json_body()
        course_id = data.get('courseId')
        if not course_id:
            raise BadRequest('courseId is required')
        is_extra_class = data.get('isExtraClass', False)
        if not isinstance(is_extra_class, bool):
            raise BadRequest('isExtraClass must be a boolean')
        occurrence_id = data.get('occurrenceId')
        updated = course_store.mark_attendance(
            str(course_id),
            _status_from(data),
            is_extra_class,
            None if occurrence_id is None else str(occurrence_id),
        )
        return jsonify({'updated': updated})

    @app.route('/api/courses/<course_id>/records/<record_id>', methods=['PUT'])
    def api_change_record(course_id: str, record_id: str):
        updated = course_store.change_record_status(course_id, record_id, _status_from(_json_body()))
        return jsonify({'updated': updated})

    @app.route('/api/notifications/action', methods=['POST'])
    def api_notification_action():
        data = _json_body()
        updated = handle_notification_action(course_store, str(data.get('action', '')), data.get('data'))
        return jsonify({'updated': updated}), 202

    # Preferences
    @app.route('/api/theme', methods=['GET'])
    def api_get_theme():
        return jsonify({'theme': course_store.theme})

    @app.route('/api/theme', methods=['PUT'])
    def api_set_theme():
        theme = _json_body().get('theme')
        if not isinstance(theme, str) or not theme:
            raise BadRequest('theme is required')
        course_store.set_theme(theme)
        return jsonify({'theme': course_store.theme})

    @app.route('/api/theme/toggle', methods=['POST'])
    def api_toggle_theme():
        return jsonify({'theme': course_store.toggle_theme()})

    @app.route('/api/clear', methods=['POST'])
    def api_clear():
        course_store.clear_data()
        return jsonify({'cleared': True})

    # Errors
    @app.errorhandler(CourseValidationError)
    def handle_course_error(error: CourseValidationError):
        return _problem(error.status, error.title, error.detail)

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        return _problem(
            400,
            'Invalid payload',
            f'{error.error_count()} validation error(s) for {error.title}',
            errors=json.loads(error.json(include_url=False)),
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return _problem(error.code or 500, error.name, error.description or error.name)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        _logger.exception("unhandled error")
        return _problem(500, 'Internal Server Error', 'An unexpected error occurred.')

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    create_app().run(host='0.0.0.0', port=port, debug=True)
