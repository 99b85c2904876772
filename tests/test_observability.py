import json
import logging
import os
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import create_app
from app_logging import JSONFormatter, clear_request_context, merge_request_context, redact_sensitive_data
from correlation_id_middleware import HEADER_NAME
from storage import InMemoryStore


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv('REQUEST_LOG_SAMPLE_RATE', '1')
    os.environ.pop('DATABASE_URL', None)
    return create_app(
        {'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'},
        store=InMemoryStore(),
    )


@pytest.fixture
def client(app):
    return app.test_client()


def test_health_endpoint(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok', 'loaded': True}


def test_request_id_propagation(client):
    response = client.get('/api/courses', headers={HEADER_NAME: 'test-id-123'})
    assert response.headers.get(HEADER_NAME) == 'test-id-123'


def test_request_id_generated_when_missing(client):
    response = client.get('/api/courses')
    assert response.headers.get(HEADER_NAME)


def test_error_handler_returns_problem_details(client):
    response = client.get('/api/courses?archived=maybe', headers={HEADER_NAME: 'problem-1'})
    data = response.get_json()
    assert response.status_code == 400
    assert data['status'] == 400
    assert data['title']
    assert data['detail']
    assert data['request_id'] == 'problem-1'


def test_json_formatter_promotes_context_and_extra():
    merge_request_context(request_id='abc', method='POST', store_time_ms=1.5)
    try:
        record = logging.LogRecord('app.ledger', logging.INFO, __file__, 1, 'attendance marked', None, None)
        record.course_id = 'CS101'
        record.new_status = 'present'
        record.token = 's3cret'
        line = json.loads(JSONFormatter().format(record))
    finally:
        clear_request_context()

    assert line['msg'] == 'attendance marked'
    assert line['level'] == 'INFO'
    assert line['method'] == 'POST'
    assert line['store_time_ms'] == 1.5
    assert line['course_id'] == 'CS101'
    assert line['extra_context']['new_status'] == 'present'
    assert line['extra_context']['token'] == '[REDACTED]'


def test_redaction_is_recursive_and_case_insensitive():
    data = {'Password': 'x', 'nested': [{'token': 'y', 'name': 'CS101'}]}
    assert redact_sensitive_data(data) == {
        'Password': '[REDACTED]',
        'nested': [{'token': '[REDACTED]', 'name': 'CS101'}],
    }
