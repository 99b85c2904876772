import json
import logging
import sys
import threading
from datetime import date, datetime
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from course_store import CourseStore
from errors import DuplicateCourseId, InvalidCountValue, InvalidCourseId, ScheduleConflict
from schemas import Course, ScheduleItem
from storage import InMemoryStore

MONDAY_MORNING = datetime(2024, 9, 2, 8, 30)


class FailingStore(InMemoryStore):
    """Reads work, writes blow up."""

    def set(self, key, value):
        raise OSError('disk full')

    def delete(self, key):
        raise OSError('disk full')


class UnreadableStore(InMemoryStore):
    """Reads blow up until ``readable`` is set."""

    readable = False

    def get(self, key):
        if not self.readable:
            raise OSError('connection refused')
        return super().get(key)


@pytest.fixture
def backend():
    return InMemoryStore()


@pytest.fixture
def store(backend):
    course_store = CourseStore(backend, clock=lambda: MONDAY_MORNING)
    course_store.load()
    return course_store


def _course(course_id='CS101', **fields):
    return Course(id=course_id, name=fields.pop('name', 'Programming'), **fields)


def test_add_initialises_and_persists(store, backend):
    added = store.add(_course(' CS101 '))

    assert added.id == 'CS101'
    assert (added.presents, added.absents, added.cancelled) == (0, 0, 0)
    assert added.attendance_percentage == 100
    assert added.attendance_records == ()
    persisted = json.loads(backend.get('courses'))
    assert persisted[0]['id'] == 'CS101'
    assert persisted[0]['requiredAttendance'] == 75
    assert persisted[0]['isArchived'] is False


def test_add_rejects_duplicate_id_case_insensitively(store):
    store.add(_course('CS101'))
    with pytest.raises(DuplicateCourseId):
        store.add(_course('cs101', name='Other'))
    assert [c.name for c in store.courses] == ['Programming']


@pytest.mark.parametrize('bad_id', ['', '   ', 'CS 101', 'CS-101', 'cs101!'])
def test_add_rejects_invalid_ids(store, bad_id):
    with pytest.raises(InvalidCourseId):
        store.add(_course(bad_id))
    assert store.courses == ()


def test_add_rejects_overlapping_weekly_schedule(store):
    course = _course(
        weekly_schedule=(
            ScheduleItem(day='Monday', time_start='09:00', time_end='10:00'),
            ScheduleItem(day='Monday', time_start='09:30', time_end='11:00'),
        )
    )
    with pytest.raises(ScheduleConflict):
        store.add(course)


def test_update_keeps_own_id_and_can_rename(store):
    store.add(_course('CS101'))
    store.add(_course('MA201', name='Algebra'))

    renamed = store.update(_course('cs101', name='Intro to Programming'))
    assert renamed.name == 'Intro to Programming'
    assert len(store.courses) == 2

    moved = store.update(_course('CS102', name='Intro to Programming'), original_id='cs101')
    assert moved.id == 'CS102'
    assert store.get('CS101') is None
    assert store.get('cs102').name == 'Intro to Programming'


def test_update_rejects_taking_another_courses_id(store):
    store.add(_course('CS101'))
    store.add(_course('MA201', name='Algebra'))
    with pytest.raises(DuplicateCourseId):
        store.update(_course('ma201'), original_id='CS101')
    assert store.get('CS101').name == 'Programming'


def test_update_unknown_course_is_ignored(store):
    assert store.update(_course('XX999')) is None
    assert store.courses == ()


def test_delete_archive_and_unarchive(store):
    store.add(_course('CS101', presents=3))
    store.add(_course('MA201', name='Algebra'))

    assert store.archive('cs101') is True
    archived = store.get('CS101')
    assert archived.is_archived is True
    assert archived.presents == 3
    assert [c.id for c in store.list_courses()] == ['MA201']
    assert [c.id for c in store.archived_courses()] == ['CS101']

    assert store.unarchive('CS101') is True
    assert [c.id for c in store.list_courses()] == ['CS101', 'MA201']

    assert store.delete('ma201') is True
    assert store.delete('ma201') is False
    assert store.archive('nope') is False


def test_set_count_recomputes_percentage(store):
    store.add(_course())
    store.set_count('CS101', 'presents', 3)
    course = store.set_count('CS101', 'absents', '1')
    assert course.attendance_percentage == 75

    course = store.set_count('CS101', 'cancelled', 4)
    assert course.cancelled == 4
    assert course.attendance_percentage == 75


@pytest.mark.parametrize('field, value', [('presents', -1), ('presents', 'abc'), ('presents', '-2'),
                                          ('presents', True), ('presents', 2.5), ('late', 1)])
def test_set_count_rejects_bad_input(store, field, value):
    store.add(_course(presents=2))
    with pytest.raises(InvalidCountValue):
        store.set_count('CS101', field, value)
    assert store.get('CS101').presents == 2


def test_set_count_unknown_course_is_ignored(store):
    assert store.set_count('XX999', 'presents', 1) is None


def test_add_schedule_item_checks_overlap(store):
    store.add(_course(weekly_schedule=(ScheduleItem(day='Monday', time_start='09:00', time_end='10:00'),)))

    store.add_schedule_item('CS101', ScheduleItem(day='Monday', time_start='10:00', time_end='11:00'))
    store.add_schedule_item('CS101', ScheduleItem(day='Tuesday', time_start='09:30', time_end='10:30'))
    with pytest.raises(ScheduleConflict):
        store.add_schedule_item('CS101', ScheduleItem(day='Monday', time_start='09:30', time_end='10:30'))

    assert len(store.get('CS101').weekly_schedule) == 3
    assert store.add_schedule_item('XX999', ScheduleItem(day='Monday', time_start='12:00', time_end='13:00')) is None


def test_add_extra_class_shows_up_in_todays_classes(store):
    store.add(_course())
    extra = store.add_extra_class('CS101', '2024-09-02', '16:00', '17:00')

    (occurrence,) = store.todays_classes()
    assert occurrence.schedule_item_id == extra.id
    assert occurrence.is_extra_class is True
    assert store.todays_classes(on=date(2024, 9, 3)) == []


def test_mark_attendance_updates_snapshot_and_notifies(store, backend):
    seen = []
    store.register_change_callback(lambda courses: seen.append(courses))
    store.add(_course(weekly_schedule=(ScheduleItem(id='s1', day='Monday', time_start='09:00', time_end='10:00'),)))

    assert store.mark_attendance('CS101', 'present', False, 's1') is True
    assert store.mark_attendance('CS101', 'present', False, 's1') is False
    assert store.mark_attendance('XX999', 'present', False, 's1') is False

    assert len(seen) == 2
    assert store.todays_classes()[0].marked_status == 'present'
    persisted = json.loads(backend.get('courses'))
    assert persisted[0]['attendanceRecords'][0]['Status'] == 'present'
    assert persisted[0]['attendanceRecords'][0]['data'].startswith('2024-09-02T08:30')


def test_change_record_status_and_recount(store):
    store.add(_course())
    store.mark_attendance('CS101', 'absent', False, 's1')
    record_id = store.get('CS101').attendance_records[0].id

    assert store.change_record_status('CS101', record_id, 'present') is True
    assert store.get('CS101').presents == 1

    store.set_count('CS101', 'presents', 9)
    assert store.recount('CS101') is True
    assert store.get('CS101').presents == 1


def test_failing_callback_does_not_break_mutation(store):
    def boom(_courses):
        raise RuntimeError('listener broke')

    store.register_change_callback(boom)
    store.add(_course())
    assert store.get('CS101') is not None


def test_load_round_trip(store, backend):
    store.add(_course(weekly_schedule=(ScheduleItem(id='s1', day='Monday', time_start='09:00', time_end='10:00'),)))
    store.mark_attendance('CS101', 'present', False, 's1')

    reloaded = CourseStore(backend, clock=lambda: MONDAY_MORNING)
    reloaded.load()

    assert reloaded.courses == store.courses


def test_load_accepts_legacy_payload():
    legacy = json.dumps([
        {'id': 'CS101', 'name': 'Programming', 'requiredAttendance': 75, 'presents': 2, 'absents': 0,
         'cancelled': 0, 'weeklySchedule': None, 'classes': []},
    ])
    course_store = CourseStore(InMemoryStore({'courses': legacy, 'theme': 'dark'}))
    course_store.load()

    (course,) = course_store.courses
    assert course.weekly_schedule == ()
    assert course.is_archived is False
    assert course_store.theme == 'dark'


def test_corrupt_payload_starts_empty(caplog):
    course_store = CourseStore(InMemoryStore({'courses': '{not json'}))
    with caplog.at_level(logging.ERROR, logger='app.store'):
        course_store.load()
    assert course_store.courses == ()
    assert course_store.loaded is True
    assert any('load' in record.getMessage() for record in caplog.records)


def test_invalid_stored_course_is_set_aside_and_kept(caplog):
    broken = {
        'id': 'MA201', 'name': 'Algebra', 'requiredAttendance': 75,
        'extraClasses': [{'id': 'x1', 'date': '2024-09-02', 'timeStart': '10:00', 'timeEnd': '10:00'}],
    }
    legacy = json.dumps([{'id': 'CS101', 'name': 'Programming', 'requiredAttendance': 75}, broken])
    backend = InMemoryStore({'courses': legacy})
    course_store = CourseStore(backend, clock=lambda: MONDAY_MORNING)

    with caplog.at_level(logging.WARNING, logger='app.store'):
        course_store.load()
    assert [c.id for c in course_store.courses] == ['CS101']
    assert any(getattr(record, 'course_id', None) == 'MA201' for record in caplog.records)

    course_store.add(_course('PH110', name='Physics'))

    persisted = json.loads(backend.get('courses'))
    assert [entry['id'] for entry in persisted] == ['CS101', 'PH110', 'MA201']
    assert persisted[-1] == broken


def test_unreadable_store_is_never_overwritten():
    original = json.dumps([{'id': 'CS101', 'name': 'Programming', 'requiredAttendance': 75}])
    backend = UnreadableStore({'courses': original})
    course_store = CourseStore(backend, clock=lambda: MONDAY_MORNING)

    course_store.load()
    assert course_store.courses == ()
    assert course_store.loaded is True

    course_store.add(_course('MA201', name='Algebra'))
    assert [c.id for c in course_store.courses] == ['MA201']
    backend.readable = True
    assert backend.get('courses') == original

    course_store.clear_data()
    course_store.add(_course('PH110', name='Physics'))
    assert [entry['id'] for entry in json.loads(backend.get('courses'))] == ['PH110']


def test_toggle_theme_from_many_threads(store, backend):
    def flip():
        for _ in range(50):
            store.toggle_theme()

    threads = [threading.Thread(target=flip) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.theme == 'light'
    assert backend.get('theme') == 'light'


def test_save_failure_keeps_in_memory_change():
    course_store = CourseStore(FailingStore())
    course_store.load()

    course_store.add(_course())
    course_store.clear_data()
    course_store.add(_course('MA201', name='Algebra'))

    assert [c.id for c in course_store.courses] == ['MA201']


def test_theme_and_clear_data(store, backend):
    assert store.theme == 'light'
    assert store.toggle_theme() == 'dark'
    assert backend.get('theme') == 'dark'

    store.add(_course())
    store.clear_data()

    assert store.courses == ()
    assert store.theme == 'light'
    assert backend.get('courses') is None
    assert backend.get('theme') is None
