"""Process-wide logging setup for the API and Celery workers."""

import logging

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers that are noisy at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "celery.redirected", "httpx")


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
