import logging
import sys

import structlog


def configure_logging(level="INFO", json=False):
    """ set up structlog for the command line tool

    The library itself never calls this; hosts embedding casign are free to
    configure structlog however they like.

    Args:
        level (str): minimum level name, e.g. "DEBUG" or "INFO".
        json (bool): render events as JSON lines instead of key=value text.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name):
    return structlog.get_logger(name)
