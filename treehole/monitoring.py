"""Slow query logging for the favorites database engines."""

import logging
import time
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_STATEMENT_PREVIEW_LENGTH = 500


def setup_query_monitoring(
    engine: AsyncEngine,
    slow_query_threshold: float = 0.1,
) -> None:
    """Log a warning for every statement slower than ``slow_query_threshold``.

    Args:
        engine: async engine whose ``sync_engine`` receives the listeners
        slow_query_threshold: seconds after which a statement counts as slow
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def receive_before_cursor_execute(
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def receive_after_cursor_execute(
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        started = conn.info.get("query_start_time")
        if not started:
            return
        total = time.perf_counter() - started.pop()

        if total > slow_query_threshold:
            preview = statement[:_STATEMENT_PREVIEW_LENGTH]
            if len(statement) > _STATEMENT_PREVIEW_LENGTH:
                preview += "..."

            logger.warning(
                "Slow query detected (%.3fs): %s",
                total,
                preview,
                extra={
                    "duration_seconds": total,
                    "threshold_seconds": slow_query_threshold,
                },
            )

    logger.debug(
        "Query performance monitoring enabled (slow query threshold: %ss)",
        slow_query_threshold,
    )
