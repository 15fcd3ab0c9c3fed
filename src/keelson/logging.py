import logging
from typing import Any

import structlog


def configure_logging(level: int | str = logging.INFO, json_logs: bool = True) -> None:
    """Configure structlog/standard logging bridge.

    Production operators log JSON lines; ``json_logs=False`` switches to the
    console renderer for local runs against the in-memory store.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger with fields bound for every line of one component's reconcile."""

    logger = structlog.get_logger()
    return logger.bind(**kwargs)
