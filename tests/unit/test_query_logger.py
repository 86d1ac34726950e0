"""Tests for app.db.query_logger — slow query detection via SQLAlchemy events."""

from unittest.mock import MagicMock, patch

from app.db.query_logger import STATEMENT_PREVIEW_CHARS, attach_query_logger


def _make_mock_engine():
    """Create a mock async engine with a sync engine."""
    engine = MagicMock()
    engine.sync_engine = MagicMock()
    return engine


def _get_handlers(threshold_ms: float):
    """Extract before/after handlers by invoking attach_query_logger."""
    handlers = {}

    def fake_listens_for(target, event_name):
        def decorator(fn):
            handlers[event_name] = fn
            return fn
        return decorator

    with patch("app.db.query_logger.event") as mock_event:
        mock_event.listens_for = fake_listens_for
        attach_query_logger(_make_mock_engine(), threshold_ms=threshold_ms)
    return handlers


def _run(handlers, conn, statement: str, elapsed_s: float):
    with patch("app.db.query_logger.time.perf_counter", side_effect=[100.0, 100.0 + elapsed_s]):
        handlers["before_cursor_execute"](conn, None, statement, {}, None, False)
        handlers["after_cursor_execute"](conn, None, statement, {}, None, False)


class TestAttachQueryLogger:
    """Verify that attach_query_logger registers event listeners."""

    def test_registers_before_and_after_events(self):
        with patch("app.db.query_logger.event") as mock_event:
            attach_query_logger(_make_mock_engine(), threshold_ms=100)
            events_registered = [c[0][1] for c in mock_event.listens_for.call_args_list]
        assert "before_cursor_execute" in events_registered
        assert "after_cursor_execute" in events_registered

    def test_threshold_defaults_to_settings(self):
        with patch("app.db.query_logger.get_settings") as mock_settings, patch(
            "app.db.query_logger.event"
        ):
            mock_settings.return_value.query_slow_threshold_ms = 250
            attach_query_logger(_make_mock_engine())
        mock_settings.assert_called_once()


class TestSlowQueryDetection:
    """Test the slow query detection logic via the event handlers."""

    def test_fast_query_not_logged(self):
        handlers = _get_handlers(threshold_ms=200)
        conn = MagicMock()
        conn.info = {}
        with patch("app.db.query_logger.logger") as mock_logger:
            _run(handlers, conn, "SELECT 1", elapsed_s=0.01)
        mock_logger.warning.assert_not_called()

    def test_slow_query_logged(self):
        handlers = _get_handlers(threshold_ms=200)
        conn = MagicMock()
        conn.info = {}
        with patch("app.db.query_logger.logger") as mock_logger:
            _run(handlers, conn, "SELECT * FROM goals", elapsed_s=0.5)
        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args[1]["extra"]
        assert extra["duration_ms"] == 500.0
        assert extra["threshold_ms"] == 200
        assert extra["statement"] == "SELECT * FROM goals"

    def test_long_statement_truncated(self):
        handlers = _get_handlers(threshold_ms=0)
        conn = MagicMock()
        conn.info = {}
        with patch("app.db.query_logger.logger") as mock_logger:
            _run(handlers, conn, "SELECT " + "x" * 2000, elapsed_s=0.001)
        statement = mock_logger.warning.call_args[1]["extra"]["statement"]
        assert len(statement) == STATEMENT_PREVIEW_CHARS

    def test_after_without_before_is_ignored(self):
        handlers = _get_handlers(threshold_ms=0)
        conn = MagicMock()
        conn.info = {}
        with patch("app.db.query_logger.logger") as mock_logger:
            handlers["after_cursor_execute"](conn, None, "SELECT 1", {}, None, False)
        mock_logger.warning.assert_not_called()
