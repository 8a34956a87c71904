# scripts/payout_daemon.py
from __future__ import annotations

import logging

from app.container import build_services
from app.workers.payout_scheduler import run_forever
from services.logging_setup import configure_logging
from settings import get_settings, validate_env_settings


logger = logging.getLogger("payout_daemon")


def main() -> None:
    settings = get_settings()
    configure_logging("payout_daemon", settings.LOG_LEVEL)
    validate_env_settings(settings)
    logger.info(
        "Payout daemon starting; weekday=%s hour=%s tz=%s min_payout_cents=%s",
        settings.PAYOUT_SCHEDULE_WEEKDAY,
        settings.PAYOUT_SCHEDULE_HOUR,
        settings.PAYOUT_SCHEDULE_TZ,
        settings.MIN_PAYOUT_CENTS,
    )
    services = build_services(settings)
    run_forever(services.payouts)


if __name__ == "__main__":
    main()
