import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "httplane"

# Loggers that report socket-level activity: connects, reuse, interim responses, closes
CONNECTION_LOGGERS = ("httplane.http.transport", "httplane.http.pool")

DEFAULT_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    force: bool = False,
    trace_connections: bool = False,
) -> logging.Logger:
    """
    Set up logging for the httplane package logger.

    Library modules only create child loggers; nothing is emitted until an
    application (or the CLI) calls this. Output goes to stderr so that a
    response body written to stdout stays clean.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
        format_string: Optional custom format string for log messages
        force: If True, reconfigure even if handlers exist
        trace_connections: Log connection lifecycle at DEBUG regardless of level

    Returns:
        Configured package logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    handler_level = logging.DEBUG if trace_connections else numeric_level

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(numeric_level)

    for name in CONNECTION_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if trace_connections else logging.NOTSET)

    if force or not logger.handlers:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
        if log_file:
            handlers.append(logging.FileHandler(log_file))

        for handler in handlers:
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(handler_level)

    # Records stop at the package logger; the root logger never sees them twice
    logger.propagate = False

    return logger
