import logging
from logging.config import dictConfig

from skillswap.core.config import LOG_FORMAT, LOG_LEVEL

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_FORMAT = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'


def setup_logging(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT):
    formatter = "json" if fmt == "json" else "default"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_FORMAT,
                },
                "json": {  # structured logs for prod
                    "format": JSON_FORMAT,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                },
            },
            "loggers": {
                # realtime/httpx are chatty at INFO
                "httpx": {"level": "WARNING"},
                "realtime": {"level": "WARNING"},
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
        }
    )

    logging.getLogger(__name__).info(f"logging_configured level={level} format={formatter}")
