# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Logging levels and setup shared by the library and the upload tool."""

import logging

# Per-frame detail, below DEBUG
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    "OFF": None,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": TRACE,
}

DEFAULT_LOG_LEVEL = "INFO"


def parse_log_level(name: str):
    """
    Map a command-line level name to a logging level.

    Returns:
        The numeric level, or None for OFF

    Raises:
        ValueError: If name is not one of LOG_LEVELS
    """
    key = name.strip().upper()
    if key == "WARNING":
        key = "WARN"
    if key not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {name} (choose from {', '.join(LOG_LEVELS)})")
    return LOG_LEVELS[key]


def configure_logging(name: str = DEFAULT_LOG_LEVEL) -> None:
    """Install a root handler at the given level, or disable logging for OFF."""
    level = parse_log_level(name)
    if level is None:
        logging.disable(logging.CRITICAL)
        return

    logging.disable(logging.NOTSET)
    logging.basicConfig(
        level=level,
        format="%(asctime)s.%(msecs)03d %(levelname)-5s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.getLogger().setLevel(level)
