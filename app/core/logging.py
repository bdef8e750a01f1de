"""Structured key=value logging for the Juror Match Engine."""

import logging
import sys
from typing import Any

# Promoted to top-level keys when passed through ``extra``
CONTEXT_FIELDS = ("run_id", "juror_id", "persona_id", "case_id")


class StructuredFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs, context fields first."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        log_data.update(
            {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}
        )
        log_data.update(getattr(record, "extra_data", {}))

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def _level_for_environment() -> int:
    try:
        from app.core.config import get_settings

        env = get_settings().MATCHING_ENV
    except Exception:
        # Missing env vars: settings cannot load yet
        return logging.INFO
    return logging.DEBUG if env == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Return a stdout logger using the structured formatter.

    The handler is attached once per logger name. Level is DEBUG in the
    dev environment and INFO everywhere else.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_environment())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log ``msg`` with juror/persona/case/run identifiers and extra fields.

    Known context fields become top-level keys; any other keyword is
    appended after them.
    """
    extra: dict[str, Any] = {
        field: kwargs.pop(field) for field in CONTEXT_FIELDS if field in kwargs
    }
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
