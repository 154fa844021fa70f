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

import io
import logging

import pytest

from clustersnap.logging import LoggerConfig, MultiLineFormatter, convert_log_level


@pytest.fixture
def logger_config():
    stream = io.StringIO()
    config = LoggerConfig.get_instance(stream)
    yield config, stream
    LoggerConfig.clean_instance()


@pytest.mark.parametrize(
    "level,expected",
    [
        ("0", logging.ERROR),
        ("1", logging.WARNING),
        ("2", logging.INFO),
        ("3", logging.DEBUG),
        ("7", logging.DEBUG),
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
    ],
)
def test_convert_log_level(level, expected):
    assert convert_log_level(level) == expected


def test_convert_unknown_log_level():
    with pytest.raises(ValueError):
        convert_log_level("LOUD")


def test_console_handler(logger_config):
    config, stream = logger_config
    logger = logging.getLogger("clustersnap.test")

    logger.debug("hidden")
    logger.info("Requested snapshot snap-1")
    config.set_log_level("3")
    logger.debug("visible")

    output = stream.getvalue()
    assert "hidden" not in output
    assert "clustersnap.test" in output
    assert "Requested snapshot snap-1" in output
    assert "visible" in output


def test_single_instance(logger_config):
    config, stream = logger_config

    assert LoggerConfig.get_instance(stream) is config
    with pytest.raises(Exception):
        LoggerConfig.get_instance(io.StringIO())


def test_multiline_indent():
    formatter = MultiLineFormatter("%(name)-10s%(levelname)-8s%(message)s", no_color=True, reset=False)
    record = logging.LogRecord("snap", logging.ERROR, __file__, 1, "first\nsecond", (), None)

    lines = formatter.format(record).splitlines()

    assert lines[0] == "snap      ERROR   first"
    assert lines[1] == " " * 18 + "second"
