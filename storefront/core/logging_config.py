# storefront/core/logging_config.py

from logging.config import dictConfig

from storefront.core.config import settings


def build_logging_config(level: str = "INFO", sql_level: str = "WARNING") -> dict:
    """Console logging for the service. Ledger and voucher logs go through the `storefront` logger."""
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
            "storefront": {"handlers": ["console"], "level": level, "propagate": False},
            "sqlalchemy.engine": {"handlers": ["console"], "level": sql_level.upper(), "propagate": False},
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


def setup_logging():
    dictConfig(build_logging_config(settings.LOG_LEVEL, settings.SQL_LOG_LEVEL))
