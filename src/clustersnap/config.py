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
from configparser import ConfigParser, Interpolation
from typing import Callable, Dict, Generic, Optional, TypeVar, Union

from clustersnap import const

LOGGER = logging.getLogger(__name__)


def _normalize_name(name: str) -> str:
    return name.replace("_", "-")


def _env_name(section: str, name: str) -> str:
    return f"{const.ENV_PREFIX}_{section}_{name}".replace("-", "_").upper()


class SnapshotConfigParser(ConfigParser):
    """Accepts both create_timeout and create-timeout as option name"""

    def optionxform(self, name: str) -> str:
        return super().optionxform(_normalize_name(name))


class Config(object):
    """
    The configuration of the host process, read from the config files once and kept for the lifetime of the process.

    Files later in the search path override earlier ones:

    1. ``/etc/clustersnap/clustersnap.cfg``
    2. the ``*.cfg`` files of the config dir, in alphabetical order
    3. ``~/.clustersnap.cfg`` and ``.clustersnap.cfg`` in the working directory
    4. an explicitly passed file

    An environment variable ``CLUSTERSNAP_<SECTION>_<NAME>`` overrides all files.
    """

    __instance: Optional[ConfigParser] = None
    __options: Dict[str, Dict[str, "Option"]] = {}

    @classmethod
    def load_config(
        cls,
        config_file: Optional[str] = None,
        config_dir: Optional[str] = None,
        main_cfg_file: str = "/etc/clustersnap/clustersnap.cfg",
    ) -> None:
        files = [main_cfg_file]
        if config_dir and os.path.isdir(config_dir):
            files.extend(sorted(os.path.join(config_dir, f) for f in os.listdir(config_dir) if f.endswith(".cfg")))
        files.extend([os.path.expanduser("~/.clustersnap.cfg"), ".clustersnap.cfg"])
        if config_file is not None:
            files.append(config_file)

        parser = SnapshotConfigParser(interpolation=Interpolation())
        loaded = parser.read(files)
        LOGGER.debug("Loaded configuration from %s", loaded)
        cls.__instance = parser

    @classmethod
    def _get_instance(cls) -> ConfigParser:
        if cls.__instance is None:
            cls.load_config()
        assert cls.__instance is not None
        return cls.__instance

    @classmethod
    def _reset(cls) -> None:
        cls.__instance = None

    @classmethod
    def get_raw(cls, section: str, name: str) -> Optional[str]:
        """
        The string value of an option, from the environment or the config files. None when it is not set.
        """
        name = _normalize_name(name)
        value = os.environ.get(_env_name(section, name))
        if value is not None:
            LOGGER.debug("Option %s:%s was set using an environment variable", section, name)
            return value
        return cls._get_instance().get(section, name, fallback=None)

    @classmethod
    def get(cls, section: str, name: str) -> object:
        """
        The validated value of a registered option
        """
        option = cls.get_option(section, name)
        if option is None:
            raise KeyError(f"Config option {section}:{name} is not defined")
        return option.get()

    @classmethod
    def is_set(cls, section: str, name: str) -> bool:
        """Check if a certain config option was specified in a config file."""
        return cls._get_instance().has_option(section, _normalize_name(name))

    @classmethod
    def set(cls, section: str, name: str, value: str) -> None:
        """
        Override a value
        """
        parser = cls._get_instance()
        if not parser.has_section(section):
            parser.add_section(section)
        parser.set(section, _normalize_name(name), value)

    @classmethod
    def register_option(cls, option: "Option") -> None:
        cls.__options.setdefault(option.section, {})[option.name] = option

    @classmethod
    def get_option(cls, section: str, name: str) -> Optional["Option"]:
        return cls.__options.get(section, {}).get(_normalize_name(name))


def is_time(value: Union[float, str]) -> float:
    """Time, the number of seconds represented as a non-negative number"""
    result = float(value)
    if result < 0:
        raise ValueError("Not a valid time, it should not be negative: %s" % value)
    return result


def is_bool(value: Union[bool, str]) -> bool:
    """Boolean value, represented as any of true, false, on, off, yes, no, 1, 0. (Case-insensitive)"""
    if isinstance(value, bool):
        return value
    states = ConfigParser.BOOLEAN_STATES
    if value.lower() not in states:
        raise ValueError("Not a boolean: %s" % value)
    return states[value.lower()]


T = TypeVar("T")


class Option(Generic[T]):
    """
    A typed config option. All options are defined at module level, before they are read.

    :param section: section in the config file
    :param name: name of the option
    :param default: the value used when the option is set nowhere
    :param documentation: the documentation for this option
    :param validator: turns the configured value into the type of the option, raises ValueError for invalid input
    """

    def __init__(
        self, section: str, name: str, default: T, documentation: str, validator: Callable[[Union[T, str]], T]
    ) -> None:
        self.section = section
        self.name = _normalize_name(name)
        self.default = default
        self.documentation = documentation
        self.validator = validator
        Config.register_option(self)

    def get(self) -> T:
        value = Config.get_raw(self.section, self.name)
        return self.validator(self.default if value is None else value)

    def set(self, value: str) -> None:
        """Only for tests"""
        Config.set(self.section, self.name, value)


#############################
# Snapshot handler config
#############################
create_timeout = Option(
    "snapshot",
    "create-timeout",
    float(const.DEFAULT_CREATE_TIMEOUT),
    "The number of seconds to wait for a new snapshot to become available",
    is_time,
)
initial_delay = Option(
    "snapshot",
    "initial-delay",
    float(const.DEFAULT_INITIAL_DELAY),
    "The number of seconds to wait after a create call before the first status poll",
    is_time,
)
min_poll_interval = Option(
    "snapshot",
    "min-poll-interval",
    float(const.DEFAULT_MIN_POLL_INTERVAL),
    "The minimal number of seconds between two status polls",
    is_time,
)
max_poll_interval = Option(
    "snapshot",
    "max-poll-interval",
    float(const.DEFAULT_MAX_POLL_INTERVAL),
    "The maximal number of seconds between two status polls, the interval grows up to this value",
    is_time,
)
wait_for_delete = Option(
    "snapshot",
    "wait-for-delete",
    False,
    "Wait until the snapshot is gone after a delete call, instead of returning once the call is accepted",
    is_bool,
)
delete_timeout = Option(
    "snapshot",
    "delete-timeout",
    float(const.DEFAULT_DELETE_TIMEOUT),
    "The number of seconds to wait for a deleted snapshot to disappear, when wait-for-delete is enabled",
    is_time,
)
