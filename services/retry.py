# services/retry.py
from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger("bondfyr.retry")

DEFAULT_ATTEMPTS = 4
DEFAULT_BASE_DELAY_S = 0.05


def call_with_retry(
    fn: Callable[[], T],
    *,
    retry_on: tuple[type[BaseException], ...],
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay_s: float = DEFAULT_BASE_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Run fn, retrying transient failures with exponential backoff."""
    last_error: BaseException | None = None
    for attempt in range(attempts):
        try:
            return fn()
        except retry_on as error:
            last_error = error
            if attempt < attempts - 1:
                # 0.05, 0.1, 0.2, ...
                backoff = base_delay_s * (2**attempt)
                logger.warning(
                    "retrying label=%s attempt=%s/%s backoff_s=%.3f error=%s",
                    label,
                    attempt + 1,
                    attempts,
                    backoff,
                    type(error).__name__,
                )
                sleep(backoff)
                continue
            raise
    if last_error is not None:
        raise last_error
    raise RuntimeError("Unexpected retry loop state")
