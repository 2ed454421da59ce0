"""Tests for logging helpers."""

from types import SimpleNamespace

from orchestrator.core.logging import _health_log_filter


def _record(message: str, level_no: int) -> dict:
    return {"message": message, "level": SimpleNamespace(no=level_no)}


class TestHealthLogFilter:
    """Tests for _health_log_filter."""

    def test_health_access_logs_hidden_above_debug(self):
        assert _health_log_filter(_record('"GET /health HTTP/1.1" 200', 20)) is False

    def test_health_access_logs_kept_at_debug(self):
        assert _health_log_filter(_record('"GET /health HTTP/1.1" 200', 10)) is True

    def test_other_messages_pass(self):
        assert _health_log_filter(_record("job_failed_terminal", 40)) is True
