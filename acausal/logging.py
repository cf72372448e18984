# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

"""
Logging for the acausal build stages.

Stages log through the package logger. Structured context is attached with
logdata() and rendered as key=value pairs after the message:

    logger.debug("reduced", **logdata(component=cmp, n_states=4))
"""

import logging
from logging import CRITICAL, DEBUG, ERROR, INFO, WARNING

__all__ = [
    "logger",
    "set_log_level",
    "set_file_handler",
    "scope_logging",
    "logdata",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

logger = logging.getLogger(__package__)


class ContextFormatter(logging.Formatter):
    """Appends the logdata() context of a record to its message."""

    def format(self, record):
        s = super().format(record)
        extras = getattr(record, "extras", None)
        if extras:
            s += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return s


_formatter = ContextFormatter(fmt="%(name)s:%(levelname)s %(message)s")


def set_file_handler(file, formatter=None) -> logging.FileHandler:
    """Log the build stages to 'file', overwriting it. Returns the handler."""
    fh = logging.FileHandler(file, mode="w")
    fh.setFormatter(_formatter if formatter is None else formatter)
    logger.addHandler(fh)
    return fh


def set_log_level(level):
    logger.setLevel(level)


def scope_logging(func):
    """Decorator to log entry and exit of a build stage."""

    def wrapper(*args, **kwargs):
        logger.debug("*** Entering %s ***", func.__qualname__)
        result = func(*args, **kwargs)
        logger.debug("*** Exiting %s ***", func.__qualname__)
        return result

    wrapper.__name__ = func.__name__
    wrapper.__qualname__ = func.__qualname__
    wrapper.__doc__ = func.__doc__
    return wrapper


def logdata(*, component=None, **kwargs):
    """Keyword arguments for logger calls that attach context to the record.

    component adds its name and template.
    """
    extras = dict(kwargs)
    if component is not None:
        extras["component"] = component.name
        extras["template"] = type(component).__name__
    if not extras:
        return {}
    return {"extra": {"extras": extras}}
