"""
Logging setup.

Call configure_logging() once at process start (main.py does). Modules log
through logging.getLogger(__name__) and never attach handlers themselves.
"""
import logging
import sys

from playedit.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | None = None) -> logging.Logger:
    """
    Attach a stdout handler to the ``playedit`` logger.

    Safe to call more than once; a second call only updates the level.
    """
    root = logging.getLogger("playedit")
    resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    root.setLevel(resolved)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        root.propagate = False

    for handler in root.handlers:
        handler.setLevel(resolved)

    return root
