"""
logging_config.py — Process-wide log setup for the Keyshop Service

Purchases and payment callbacks can be served by several worker processes
at once, so every record is stamped with the PID next to the logger name.
Records go to stdout for the container runtime and to a local file that
survives restarts. HTTP client and SQL engine chatter is held back to
warnings, otherwise every gateway call and every claim would flood the log.
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def _handlers(log_file):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    return handlers


def setup_logging(log_file: str = "keyshop.log", level: int = logging.INFO,
                  quiet_loggers=QUIET_LOGGERS):
    """
    Installs the stdout and file handlers on the root logger.

    Calling it again once the root logger has handlers is a no-op, so the
    application module can call it at import time.

    Args:
        log_file (str): File that receives a copy of every record. Falsy disables it.
        level (int): Threshold for the root logger.
        quiet_loggers (tuple): Library loggers raised to WARNING.
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT, handlers=_handlers(log_file))

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name):
    """Named logger sharing the root handlers; pass the module's __name__."""
    return logging.getLogger(name)
