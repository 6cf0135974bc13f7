"""Project-wide logger; modules use ``from logger import logger``."""

import logging
import os
import sys

LOG_FORMAT = '[%(asctime)s] %(levelname)-8s %(message)s'
DATE_FORMAT = '%H:%M:%S'

logger = logging.getLogger("distlogit")
logger.setLevel(logging.DEBUG)

# console level comes from DISTLOGIT_LOG_LEVEL (default INFO)
handler = logging.StreamHandler(sys.stdout)
handler.setLevel(os.environ.get("DISTLOGIT_LOG_LEVEL", "INFO").upper())
handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

logger.addHandler(handler)
logger.propagate = False


def set_level(level):
    """Change the console level, e.g. set_level("DEBUG") for per-iteration losses"""
    handler.setLevel(level)
