"""Application configuration.

Values are read from the environment once, when this module is imported.
A local ``.env`` file is loaded first so development settings do not need to
be exported by hand.

The course collection and the theme preference are persisted through a
key-value table; ``DATABASE_URL`` selects where that table lives. Heroku still
hands out URLs starting with ``postgres://`` which SQLAlchemy no longer
accepts, so the prefix is normalised to ``postgresql://``.
"""

import os
from dotenv import load_dotenv


class Config:
    """Base configuration consumed by :func:`app.create_app`."""

    load_dotenv()

    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-in-prod')

    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or 'sqlite:///attendance.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Keys under which the course collection and theme are stored.
    COURSES_KEY = os.environ.get('COURSES_KEY', 'courses')
    THEME_KEY = os.environ.get('THEME_KEY', 'theme')
    DEFAULT_THEME = os.environ.get('DEFAULT_THEME', 'light')

    # Attempts made to create the key-value table at start-up.
    STARTUP_DB_ATTEMPTS = int(os.environ.get('STARTUP_DB_ATTEMPTS', '3'))
