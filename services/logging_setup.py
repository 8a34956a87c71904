"""Central logging setup shared by the API, the payout daemon and one-shot scripts."""

from __future__ import annotations

import logging

from services.observability import get_correlation_id

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:[%(correlation_id)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_LEVEL = "INFO"


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


def configure_logging(service_name: str, level_name: str | None = None) -> None:
    """Configure the root logger for console output, tagged with the request or payout run id."""
    level_name = (level_name or DEFAULT_LOG_LEVEL).strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.getLogger(service_name).info("Logging configured level=%s", logging.getLevelName(level))
