"""
Logging setup.

Every module logs to its own "harrier.*" logger; configure_logging()
attaches one console handler to the "harrier" root so applications get
readable output without touching the global root logger.
"""

import logging
import logging.config
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[str, int] = "INFO", fmt: Optional[str] = None) -> None:
    """
    Configure the "harrier" logger hierarchy.

    Args:
        level: Level name or number
        fmt: Log record format
    """
    if isinstance(level, int):
        level = logging.getLevelName(level)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "harrier": {"format": fmt or DEFAULT_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "harrier",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "harrier": {
                "level": level.upper(),
                "handlers": ["console"],
                "propagate": False,
            },
        },
    })
