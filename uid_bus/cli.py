# uid_bus/cli.py
"""Argument parsing shared by the uidscan and uidresp command-line tools."""
import argparse

from .config import BAUD_RATE, LOG_FILENAME, LOG_LEVEL

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class BusArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors on one line and exits with status 1."""

    def error(self, message):
        self.exit(1, f"{self.prog}: error: {message}\n")


def non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid timeout '{text}', expected a non-negative integer")
    if value < 0:
        raise argparse.ArgumentTypeError(f"invalid timeout '{text}', expected a non-negative integer")
    return value


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--port', default=None,
                        help='Serial port or pyserial URL (default: stdin/stdout)')
    parser.add_argument('--baud', type=int, default=BAUD_RATE,
                        help=f'Baud rate for --port (default: {BAUD_RATE})')
    parser.add_argument('--log-level', default=LOG_LEVEL, choices=LOG_LEVELS,
                        help=f'Console log level (default: {LOG_LEVEL})')
    parser.add_argument('--log-file', default=LOG_FILENAME,
                        help='Also write a DEBUG log to this file')
