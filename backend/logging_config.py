"""
Central logging setup for the exam tracker service.

Every module logs through ``logging.getLogger(__name__)``; this module only
installs the root handler and format once per process.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(funcName)-24s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(log_level: str = "INFO") -> None:
    global _configured
    if _configured:
        return

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.setLevel(level)
    root_logger.addHandler(handler)

    # uvicorn access lines already cover request logging
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
