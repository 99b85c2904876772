"""Seed the key-value store with a few sample courses.

Existing data is cleared first. Useful for trying the API locally.

Usage:
    python seed.py

"""

from datetime import date
from typing import List

from app import create_app
from course_store import CourseStore
from schemas import Course, ScheduleItem


def sample_courses() -> List[Course]:
    """Three courses with weekly slots spread over the week."""
    return [
        Course(
            id='CS101',
            name='Introduction to Programming',
            required_attendance=75,
            weekly_schedule=(
                ScheduleItem(day='Monday', time_start='09:00', time_end='10:00'),
                ScheduleItem(day='Wednesday', time_start='09:00', time_end='10:00'),
                ScheduleItem(day='Friday', time_start='14:00', time_end='15:30'),
            ),
        ),
        Course(
            id='MA201',
            name='Linear Algebra',
            required_attendance=80,
            weekly_schedule=(
                ScheduleItem(day='Tuesday', time_start='11:00', time_end='12:30'),
                ScheduleItem(day='Thursday', time_start='11:00', time_end='12:30'),
            ),
        ),
        Course(
            id='PH110',
            name='Physics Lab',
            required_attendance=85,
            weekly_schedule=(
                ScheduleItem(day='Monday', time_start='14:00', time_end='17:00'),
            ),
        ),
    ]


def seed_data(store: CourseStore) -> None:
    store.clear_data()
    for course in sample_courses():
        store.add(course)
    store.add_extra_class('CS101', date.today().isoformat(), '16:00', '17:00')
    print(f'Seeded {len(store.courses)} courses.')


def main() -> None:
    app = create_app()
    with app.app_context():
        seed_data(app.extensions['course_store'])


if __name__ == '__main__':
    main()
