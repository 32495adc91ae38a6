"""
Logging setup for the SWM service.

Call `setup_logging()` once at startup. Other modules only do
`logger = logging.getLogger(__name__)`.
"""
import logging
import sys

from swm.config import settings

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging():
    """Configure the root logger. Idempotent."""
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for lib in ["sqlalchemy.engine", "uvicorn.access"]:
        logging.getLogger(lib).setLevel(logging.WARNING)
