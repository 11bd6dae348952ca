"""
Unit Tests for settings and structured logging
"""
import json
import logging
import pytest
from pydantic import ValidationError as SettingsValidationError

from app.core.config import Settings, parse_cors_origins
from app.core.middleware import extract_project_id
from app.core.logging_config import (
    JSONFormatter,
    CapstoneFlowLogger,
    logger,
    set_request_id,
    set_user_id,
    get_request_id,
    generate_request_id,
)


class TestSettings:
    """Test environment-driven configuration"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv('STATUS_TRANSITION_POLICY', raising=False)
        s = Settings(DATABASE_URL='sqlite+aiosqlite:///:memory:', JWT_SECRET_KEY='x')

        assert s.APP_NAME == 'CapstoneFlow'
        assert s.DEFAULT_SUPERVISOR_CAPACITY == 10
        assert s.STATUS_TRANSITION_POLICY == 'open'

    def test_policy_is_normalised(self):
        s = Settings(
            DATABASE_URL='sqlite+aiosqlite:///:memory:',
            JWT_SECRET_KEY='x',
            STATUS_TRANSITION_POLICY=' Forward_Only ',
        )

        assert s.STATUS_TRANSITION_POLICY == 'forward_only'

    def test_unknown_policy_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(
                DATABASE_URL='sqlite+aiosqlite:///:memory:',
                JWT_SECRET_KEY='x',
                STATUS_TRANSITION_POLICY='sideways',
            )

    def test_negative_capacity_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(
                DATABASE_URL='sqlite+aiosqlite:///:memory:',
                JWT_SECRET_KEY='x',
                DEFAULT_SUPERVISOR_CAPACITY=-1,
            )

    @pytest.mark.parametrize('raw, expected', [
        ('http://a.test,http://b.test', ['http://a.test', 'http://b.test']),
        ('["http://a.test"]', ['http://a.test']),
        ('', []),
    ])
    def test_parse_cors_origins(self, raw, expected):
        assert parse_cors_origins(raw) == expected


class TestLogging:
    """Test the structured logger"""

    def test_logger_class(self):
        assert isinstance(logger, CapstoneFlowLogger)

    def test_generate_request_id_is_short_and_unique(self):
        first = generate_request_id()
        second = generate_request_id()

        assert first != second
        assert len(first) == 8

    def test_json_formatter_includes_context_and_extras(self):
        """Test context variables and extra fields end up in the JSON line"""
        set_request_id('req-12345')
        set_user_id('user-42')
        try:
            record = logging.LogRecord('capstoneflow', logging.INFO, __file__, 1, 'hello', None, None)
            record.event_type = 'transition'

            data = json.loads(JSONFormatter().format(record))
        finally:
            set_request_id('')
            set_user_id('')

        assert data['message'] == 'hello'
        assert data['request_id'] == 'req-12345'
        assert data['user_id'] == 'user-42'
        assert data['event_type'] == 'transition'
        assert get_request_id() == ''

    def test_log_transition_record(self, caplog):
        """Test transitions are logged with from/to state"""
        with caplog.at_level(logging.INFO, logger='capstoneflow'):
            logger.log_transition('task', 't-1', 'Pending', 'Submitted', actor_id='u-1')

        record = next(r for r in caplog.records if getattr(r, 'event_type', None) == 'transition')
        assert record.from_state == 'Pending'
        assert record.to_state == 'Submitted'
        assert record.actor_id == 'u-1'
        assert 'Pending -> Submitted' in record.getMessage()


class TestRequestContext:

    @pytest.mark.parametrize('path, expected', [
        ('/api/v1/projects/p-1/tasks', 'p-1'),
        ('/api/v1/chat/p-2', 'p-2'),
        ('/api/v1/chat/direct/u-1', ''),
        ('/api/v1/projects', ''),
        ('/api/v1/notifications', ''),
    ])
    def test_extract_project_id(self, path, expected):
        assert extract_project_id(path) == expected
