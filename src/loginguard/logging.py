"""ABOUTME: Logging configuration routing stdlib and structlog output through one handler
ABOUTME: Human readable console output in development, one JSON object per line elsewhere"""

import logging.config
from typing import Any

import structlog

from loginguard import config

timestamper = structlog.processors.TimeStamper(fmt="iso")

# applied to records that did not come through structlog (sqlalchemy, smtplib, ...)
foreign_pre_chain = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    timestamper,
]


def handler_name(development: bool) -> str:
    return "dev_console" if development else "default"


def build_logging_config(development: bool, log_level: int = logging.INFO) -> dict[str, Any]:
    """The dictConfig for LoginGuard. Only the selected handler is attached to the root logger."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=False),
                "foreign_pre_chain": foreign_pre_chain,
            },
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
                "foreign_pre_chain": foreign_pre_chain,
            },
        },
        "handlers": {
            "default": {"level": log_level, "class": "logging.StreamHandler", "formatter": "json"},
            "dev_console": {"level": log_level, "class": "logging.StreamHandler", "formatter": "console"},
        },
        "loggers": {
            "": {"handlers": [handler_name(development)], "level": log_level, "propagate": True},
            # engine echo is opt in via DB_ECHO
            "sqlalchemy.engine": {"level": logging.WARNING},
        },
    }


structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


def logging_setup(log_level: int = logging.INFO) -> None:
    """Install the handlers for the current environment at `log_level`. Safe to call repeatedly."""
    logging.config.dictConfig(build_logging_config(config.is_development(), log_level))

    if config.bool_environ_get("DB_ECHO"):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
