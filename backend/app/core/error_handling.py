"""Error handling utilities: structured logging and the table load error."""
from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class TableLoadError(ValueError):
    """A static content table is missing or does not validate."""

    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"[{table}] {message}")
        self.table = table


def log_error_with_context(
    error: Exception,
    operation: str,
    table: str | None = None,
    safehouse_id: str | None = None,
    alert_id: str | None = None,
    extra_context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """
    Log an error with the engine context it happened in.

    Args:
        error: The exception that occurred
        operation: Engine operation name (e.g., 'load_table', 'cli.deck')
        table: Static table involved, if any
        safehouse_id: Safehouse the operation ran against
        alert_id: Incursion alert the operation ran against
        extra_context: Additional context dict to include in log
        level: Logging level (lenient table loads log at WARNING)
    """
    context_parts = []
    if table:
        context_parts.append(f"table={table}")
    if safehouse_id:
        context_parts.append(f"safehouse_id={safehouse_id}")
    if alert_id:
        context_parts.append(f"alert_id={alert_id}")
    context_str = ", ".join(context_parts) if context_parts else "no context"

    extra: dict[str, Any] = dict(extra_context or {})
    if table:
        extra["table"] = table
    if safehouse_id:
        extra["safehouse_id"] = safehouse_id
    if alert_id:
        extra["alert_id"] = alert_id
    extra["operation"] = operation

    logger.log(
        level,
        "[%s] %s: %s (%s)",
        operation,
        type(error).__name__,
        error,
        context_str,
        exc_info=level >= logging.ERROR,
        extra=extra,
    )

