"""structlog configuration for the training engine and its worker.

Module loggers use the standard library with %-style messages; they are
rendered through the same structlog processor chain as structlog events.
"""

import logging

import structlog

from woodpecker.config import Settings

# Libraries that log every statement or poll at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "arq.worker")


def _shared_processors(settings: Settings) -> list[structlog.types.Processor]:
    def add_app_context(logger, method_name, event_dict):  # type: ignore[no-untyped-def]
        event_dict.setdefault("app", "woodpecker")
        event_dict.setdefault("env", settings.environment)
        return event_dict

    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def setup_logging(settings: Settings) -> None:
    """Render as JSON lines, or colored console output when log_format is "console"."""
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if settings.log_format == "console" else structlog.processors.JSONRenderer()
    )
    shared = _shared_processors(settings)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
