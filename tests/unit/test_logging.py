"""
Unit tests for structured logging: context propagation and JSON output.
"""

import json
import logging

import pytest

from src.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)


def _record(**extra):
    record = logging.LogRecord("src.modules.guild", logging.INFO, __file__, 10, "Service operation: invite", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def reset_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.unit
class TestLogContext:

    def test_context_is_scoped(self):
        with LogContext(user_id=42, group_id=7, command="accept_invitation", correlation_id="abc12345"):
            assert get_log_context()["user_id"] == "42"

        assert get_log_context() == {}

    async def test_async_usage(self):
        async with LogContext(user_id=1, command="leave"):
            assert get_log_context()["command"] == "leave"

    def test_set_log_context_merges(self):
        set_log_context(user_id=5)
        set_log_context(operation="mark_all_read")

        assert get_log_context() == {"user_id": "5", "operation": "mark_all_read"}


@pytest.mark.unit
class TestContextFilter:

    def test_ambient_context_is_applied(self):
        record = _record()
        with LogContext(user_id=9, group_id=3, command="invite", correlation_id="c0ffee00"):
            ContextFilter().filter(record)

        assert record.user_id == "9"
        assert record.group_id == "3"
        assert record.correlation_id == "c0ffee00"
        assert record.component == "src"

    def test_explicit_extra_wins(self):
        record = _record(group_id=11)
        with LogContext(group_id=3):
            ContextFilter().filter(record)

        assert record.group_id == 11


@pytest.mark.unit
class TestJSONFormatter:

    def test_extra_fields_are_nested(self):
        record = _record(operation="invite", invitation_id=99)
        ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Service operation: invite"
        assert payload["operation"] == "invite"
        assert payload["extra"]["invitation_id"] == 99
        assert "user_id" not in payload
