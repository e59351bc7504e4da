"""
Centralized logging configuration for the marketplace service.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides the format, level and destination once, at application start-up.
"""

import logging
import sys

from marketplace.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"


def setup_logging(level: str = LOG_LEVEL):
    """
    Configure the root logger for the application.

    Logs go to stdout so they are picked up by the container runtime.
    SQLAlchemy's engine logger is kept at WARNING unless SQL echo is enabled.
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce verbosity from external libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
