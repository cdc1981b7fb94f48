"""
Logging setup

Plain stdlib logging; the "audit" logger mirrors persisted audit events.
"""
import logging

from zielvereinbarung.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    logging.getLogger("audit").setLevel(logging.INFO)

    # SQL echo is controlled by DEBUG via the engine
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
