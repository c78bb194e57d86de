"""
logging_config.py — Centralized Logging Configuration for the Settlement Service

Configures one logging setup for the whole application so that every module
logs with the same format to both console and file.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Reduced verbosity for external dependencies (pika, httpx)
"""

import logging
import sys

from .config import LOG_FILE


def setup_logging(log_file: str = LOG_FILE, level=logging.INFO):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO (default)
        - Log format: timestamp, log level, process ID, logger name and message
        - Output destinations:
            1. File: ``log_file`` (persistent log, 'settlement.log' by default)
            2. Console (stdout): real-time logs, Docker/Kubernetes compatible
        - Reduced verbosity for third-party libraries such as pika and httpx

    Args:
        log_file (str): Path of the persistent log file.
        level (int): Root log level.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    logging.getLogger("pika").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
