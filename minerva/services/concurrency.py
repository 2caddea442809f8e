"""
Retry support for optimistic concurrency control.

Writers never block each other; a writer that loses a version race gets
``ConcurrencyConflictError`` and is expected to re-read and try again.
"""

import logging
import time
from typing import Any, Callable, Optional

from ..core.exceptions import ConcurrencyConflictError, ValidationError

logger = logging.getLogger(__name__)


def execute_with_retry(func: Callable[[], Any], max_retries: int = 3,
                       backoff_factor: float = 0.05,
                       sleep: Optional[Callable[[float], None]] = None) -> Any:
    """Call ``func`` again while it raises ``ConcurrencyConflictError``.

    ``func`` must perform its own fresh reads on every call. After
    ``max_retries`` retries the last conflict is re-raised.
    """
    if max_retries < 0:
        raise ValidationError("max_retries must not be negative", error_code="invalid_max_retries")
    sleep = sleep or time.sleep

    for attempt in range(max_retries + 1):
        try:
            return func()
        except ConcurrencyConflictError:
            if attempt >= max_retries:
                raise
            delay = backoff_factor * (2 ** attempt)
            logger.debug("Concurrency conflict, retry %d/%d in %.3fs", attempt + 1, max_retries, delay)
            sleep(delay)
