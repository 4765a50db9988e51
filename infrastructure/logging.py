import logging
import logging.handlers
import sys

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from infrastructure.config import Settings

SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


def _service_context(settings: Settings) -> Processor:
    """Stamp every record with the service name and environment."""

    def add_service_context(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("env", settings.app_env)
        return event_dict

    return add_service_context


def _build_handlers(settings: Settings, formatter: logging.Formatter) -> list[logging.Handler]:
    settings.log_dir.mkdir(parents=True, exist_ok=True)

    stream_handler = logging.StreamHandler(sys.stdout)
    file_handler = logging.handlers.TimedRotatingFileHandler(
        settings.log_dir / f"{settings.app_env}.log",
        when="midnight",
        interval=1,
        backupCount=settings.log_backup_count,
    )
    handlers: list[logging.Handler] = [stream_handler, file_handler]
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(settings: Settings) -> None:
    """Route structlog, uvicorn and stdlib records through one console and one rotating file.

    Development gets the colored console renderer, every other environment
    JSON lines. Calling it again replaces the handlers instead of stacking them.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        _service_context(settings),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if settings.app_env == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handlers = _build_handlers(settings, formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(settings.log_level.upper())

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = list(handlers)
        server_logger.propagate = False
