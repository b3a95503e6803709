# uid_bus/logging_config.py

import logging
import sys

from .config import LOG_FILENAME, LOG_LEVEL

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(level=LOG_LEVEL, log_file=LOG_FILENAME):
    """
    Configures the root logger to output to the console and, optionally, a file.

    The console handler writes to stderr: stdout carries the bus when the
    tools talk over stdio.
    """

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)

        # --- Create a handler to write logs to a file ---
        if log_file:
            file_handler = logging.FileHandler(log_file, mode='w')
            file_handler.setLevel(logging.DEBUG)  # Log everything to the file
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            print(f"Logging configured. Detailed logs will be written to '{log_file}'", file=sys.stderr)

    return logger
