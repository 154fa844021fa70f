"""
    Copyright 2024 Inmanta

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at

        http://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions and
    limitations under the License.

    Contact: code@inmanta.com
"""

import logging
import os
import sys
from typing import Optional, TextIO

import colorlog
from colorlog.formatter import LogColors

from clustersnap import const

LOGGER = logging.getLogger(__name__)


def _is_on_tty() -> bool:
    return (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()) or const.ENVIRON_FORCE_TTY in os.environ


"""
This dictionary maps the verbosity levels to the corresponding Python log levels
"""
log_levels = {
    "0": logging.ERROR,
    "1": logging.WARNING,
    "2": logging.INFO,
    "3": logging.DEBUG,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def convert_log_level(level: str) -> int:
    """
    Convert the given verbosity level or level name to the corresponding Python log level.

    :param level: A digit (0-3, higher values are capped at 3) or a level name
    :return: python log level
    """
    if level.isdigit() and int(level) > 3:
        level = "3"
    try:
        return log_levels[level.upper()]
    except KeyError:
        raise ValueError("Unknown log level: %r" % level)


class MultiLineFormatter(colorlog.ColoredFormatter):
    """
    Formatter for multi-line log records.

    Continuation lines of a record are indented to the length of the record header, so a wait that fails with
    a long error message stays readable in the console.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        *,
        log_colors: Optional[LogColors] = None,
        reset: bool = True,
        no_color: bool = False,
    ):
        super().__init__(fmt, log_colors=log_colors, reset=reset, no_color=no_color)
        self.fmt = fmt

    def get_header_length(self, record: logging.LogRecord) -> int:
        """
        Get the header length of a given log record, without color codes.
        """
        formatter = colorlog.ColoredFormatter(
            fmt=self.fmt,
            log_colors=self.log_colors,
            reset=False,
            no_color=True,
        )
        header = formatter.format(
            logging.LogRecord(
                record.name,
                record.levelno,
                record.pathname,
                record.lineno,
                "",
                (),
                None,
            )
        )
        return len(header)

    def format(self, record: logging.LogRecord) -> str:
        indent: str = " " * self.get_header_length(record)
        head, *tail = super().format(record).splitlines(True)
        return head + "".join(indent + line for line in tail)


def get_console_formatter(timed: bool = False) -> MultiLineFormatter:
    log_format = "%(asctime)s " if timed else ""
    if _is_on_tty():
        log_format += "%(log_color)s%(name)-25s%(levelname)-8s%(reset)s%(blue)s%(message)s"
        log_colors = {"DEBUG": "cyan", "INFO": "green", "WARNING": "yellow", "ERROR": "red", "CRITICAL": "red"}
    else:
        log_format += "%(name)-25s%(levelname)-8s%(message)s"
        log_colors = None
    return MultiLineFormatter(log_format, log_colors=log_colors, reset=_is_on_tty(), no_color=not _is_on_tty())


class LoggerConfig:
    """
    Entry-point for configuring the Python logging framework for a host process.

    Call `get_instance` once to install a console handler on the root logger, then `set_log_level` to adjust it.
    """

    _instance: Optional["LoggerConfig"] = None

    def __init__(self, stream: TextIO = sys.stdout, timed: bool = False) -> None:
        self._stream = stream
        self._handler = logging.StreamHandler(stream)
        self._handler.setFormatter(get_console_formatter(timed))
        self._handler.setLevel(logging.INFO)
        logging.root.addHandler(self._handler)
        logging.root.setLevel(logging.INFO)

    @classmethod
    def get_instance(cls, stream: TextIO = sys.stdout) -> "LoggerConfig":
        """
        Obtain the singleton, installing it on first use.

        :param stream: The stream to send log messages to. Default is standard output (sys.stdout)
        """
        if cls._instance:
            if cls._instance._stream is not stream:
                raise Exception("Instance already exists with a different stream")
        else:
            cls._instance = cls(stream)
        return cls._instance

    @classmethod
    def clean_instance(cls) -> None:
        """
        Remove and close the handler installed by this class.
        """
        if cls._instance is not None:
            logging.root.removeHandler(cls._instance._handler)
            cls._instance._handler.close()
        cls._instance = None

    def set_log_level(self, level: str) -> None:
        python_log_level = convert_log_level(level)
        self._handler.setLevel(python_log_level)
        logging.root.setLevel(python_log_level)

    def get_handler(self) -> logging.Handler:
        return self._handler
