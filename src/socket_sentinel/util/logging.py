"""This module provides the logger factory shared by every Socket Sentinel module.

It defines the `LoggingUtil` class, whose static method hands out console
loggers with a single, consistent format. The verbosity of the whole process
is controlled by the `LOGLEVEL` environment variable so that the poll loop can
be made chatty (payload dumps at DEBUG) without touching the code.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - [%(name)s][%(levelname)s] %(message)s"


class LoggingUtil:
    """Factory for pre-configured loggers.

    Every module obtains its logger through `LoggingUtil.get_logger(__name__)`
    so that the telemetry adapter, the forecaster, the policy engine and the
    monitor all write the same line format to the console.
    """

    @staticmethod
    def get_logger(logger_name: str) -> logging.Logger:
        """Retrieves a configured logger instance.

        The level is read from the 'LOGLEVEL' environment variable (a level
        name such as DEBUG or WARNING). Unknown or missing values fall back to
        INFO.

        Args:
            logger_name: The name of the logger to retrieve (typically `__name__`
                         of the calling module).

        Returns:
            A configured `logging.Logger` instance.
        """
        logger = logging.getLogger(logger_name)
        log_level = os.getenv("LOGLEVEL", "INFO").strip().upper()

        if log_level not in logging.getLevelNamesMapping():
            log_level = "INFO"

        logger.setLevel(log_level)

        # get_logger may be called several times for the same name
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(console_handler)

        return logger
