# app/workers/payout_scheduler.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from app.payouts.processor import PayoutProcessor
from services.observability import correlation_scope

logger = logging.getLogger("bondfyr.payout_scheduler")

# sleep in short slices so a stopped process exits promptly
MAX_SLEEP_SLICE_S = 60.0


def run_once(processor: PayoutProcessor, *, trigger: str = "scheduled") -> dict:
    with correlation_scope(prefix="payout_"):
        summary = processor.run(trigger=trigger)
        counts = summary.get("counts") or {}
        logger.info(
            "payout run %s | candidates=%s succeeded=%s failed=%s skipped=%s total_paid_cents=%s timed_out=%s",
            summary.get("id"),
            counts.get("candidates"),
            counts.get("succeeded"),
            counts.get("failed"),
            counts.get("skipped"),
            summary.get("total_paid_cents"),
            summary.get("timed_out"),
        )
        return summary


def run_forever(
    processor: PayoutProcessor,
    *,
    sleep: Callable[[float], None] = time.sleep,
    max_runs: Optional[int] = None,
) -> int:
    """Waits for each weekly slot and runs the batch. Returns the number of runs made."""
    runs = 0
    logger.info("payout scheduler started")
    while max_runs is None or runs < max_runs:
        next_run = processor.schedule.next_run_after(processor.clock())
        logger.info("next payout run at %s", next_run.isoformat())

        while True:
            remaining = (next_run - processor.clock()).total_seconds()
            if remaining <= 0:
                break
            sleep(min(remaining, MAX_SLEEP_SLICE_S))

        try:
            run_once(processor)
        except KeyboardInterrupt:
            logger.info("payout scheduler exiting")
            raise
        except Exception:
            # the next slot resumes from persisted state
            logger.exception("payout run failed")
        runs += 1
    return runs
