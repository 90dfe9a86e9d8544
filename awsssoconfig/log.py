"""
Logger construction for aws-sso-config.
"""

import logging
import sys

LOGGER_NAME = "aws-sso-config"


def get_logger(verbose=False, stream=None):
    """
    Build the logger that is handed to every component.

    Messages are written bare (no level or timestamp prefix) so that
    progress lines read like regular CLI output.

    Args:
        verbose: Log at DEBUG instead of INFO
        stream: Output stream (defaults to stderr)

    Returns:
        logging.Logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger


def default_logger(logger=None):
    """Return the given logger, or the package logger when None."""
    if logger is not None:
        return logger
    return logging.getLogger(LOGGER_NAME)
