"""
Slow query detection via SQLAlchemy engine events.

Times every cursor execution and logs statements slower than the
configured threshold. Cache misses land here first, so this is where a
cold cache shows up in the logs.

Usage:
    from app.db.query_logger import attach_query_logger
    attach_query_logger(engine)
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import get_settings

logger = logging.getLogger(__name__)

STATEMENT_PREVIEW_CHARS = 500


def attach_query_logger(engine: AsyncEngine, threshold_ms: float | None = None) -> None:
    """
    Instrument the sync engine underlying ``engine``.

    Args:
        engine: The async SQLAlchemy engine to instrument.
        threshold_ms: Override for ``query_slow_threshold_ms``.
    """
    if threshold_ms is None:
        threshold_ms = get_settings().query_slow_threshold_ms
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(sync_engine, "after_cursor_execute")
    def _log_if_slow(conn, cursor, statement, parameters, context, executemany):
        start_times = conn.info.get("query_start_time")
        if not start_times:
            return
        elapsed_ms = (time.perf_counter() - start_times.pop()) * 1000.0
        if elapsed_ms < threshold_ms:
            return
        logger.warning(
            "slow_query_detected",
            extra={
                "duration_ms": round(elapsed_ms, 2),
                "threshold_ms": threshold_ms,
                "statement": statement[:STATEMENT_PREVIEW_CHARS],
            },
        )
