from __future__ import annotations

import logging
import sys

import structlog

# httpx logs every request at INFO; page loops would flood the output.
_NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure stdlib logging and structlog for the counting engine.

    ``json_logs`` forces the renderer; by default JSON is used unless stderr
    is a terminal.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    use_json = not sys.stderr.isatty() if json_logs is None else json_logs
    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service="record-counter")
