"""Timing utilities for performance measurement."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .logging_config import get_logger

logger = get_logger(__name__)


@contextmanager
def timed(operation: str, warn_ms: float | None = None, **context: Any) -> Iterator[None]:
    """Log elapsed time for a block.

    Args:
        operation: Label for the timed block.
        warn_ms: If set, log at warning level when elapsed time exceeds this (ms).
        **context: Extra key/values bound to the log line (e.g. ``tenant_id``).

    Usage::

        with timed("ingest", warn_ms=500, tenant_id=tenant_id):
            await orchestrator.ingest(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log_method = logger.debug
        if warn_ms is not None and elapsed_ms > warn_ms:
            log_method = logger.warning
        log_method(
            "operation_timed",
            operation=operation,
            elapsed_ms=round(elapsed_ms, 2),
            **context,
        )
