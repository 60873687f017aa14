"""structlog setup for applications embedding the engine.

Modules log through `structlog.get_logger()` with snake_case event names and
keyword context. Call configure_logging() once at process start.
"""

import logging
from typing import Union

import structlog


def configure_logging(level: Union[int, str] = "INFO", json_output: bool = False) -> None:
    """Configure structlog processors.

    Args:
        level: Minimum level, as a logging constant or name ("DEBUG", "INFO", ...)
        json_output: Render one JSON object per line instead of console output
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
