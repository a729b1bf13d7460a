"""Route the ``rapport.*`` and uvicorn loggers to one rotating file and the console."""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from rapport.config import LoggingConfig

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"
HANDLER_PREFIX = "rapport_"

# Loggers that share the rapport handlers instead of their own.
ROUTED_LOGGERS = ("rapport", "uvicorn", "uvicorn.error", "uvicorn.access")
# requests logs every pooled connection at DEBUG.
NOISY_LOGGERS = ("urllib3", "urllib3.connectionpool")


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, "%H:%M:%S")


def _build_handlers(log_path: str, settings: LoggingConfig) -> list[logging.Handler]:
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.file_max_bytes,
        backupCount=settings.file_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.name = f"{HANDLER_PREFIX}file"

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(settings.level.upper())
    stream_handler.name = f"{HANDLER_PREFIX}stream"

    handlers: list[logging.Handler] = [file_handler, stream_handler]
    for handler in handlers:
        handler.setFormatter(_formatter())
    return handlers


def _route(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    for existing in list(logger.handlers):
        if (existing.name or "").startswith(HANDLER_PREFIX):
            logger.removeHandler(existing)
            existing.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False


def configure_logging(logs_dir: str, settings: Optional[LoggingConfig] = None) -> str:
    """Install the handlers and return the path of the new log file.

    Calling it again replaces the handlers from the previous call, so an app
    rebuilt in the same process does not log every line twice.
    """
    settings = settings or LoggingConfig()
    os.makedirs(logs_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_path = os.path.join(logs_dir, f"rapport_{timestamp}.log")
    handlers = _build_handlers(log_path, settings)

    for name in ROUTED_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG if name == "rapport" else logging.INFO)
        _route(logger, handlers)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("rapport.boot").info(
        "Logging initialized: %s (console level %s)", log_path, settings.level.upper()
    )
    return log_path
