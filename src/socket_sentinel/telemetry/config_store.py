"""Persistence of the operator `Config`.

The core only needs two operations from its storage collaborator, `load` and
`save`. `YamlConfigStore` keeps the record in a YAML file next to the process;
`InMemoryConfigStore` is used when nothing should touch the disk (tests,
embedding in another service).
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Optional

import yaml
from pydantic import ValidationError

from socket_sentinel.telemetry.models import Config
from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


class ConfigStore(ABC):
    """Key-value storage holding the latest operator configuration."""

    @abstractmethod
    def load(self) -> Config:
        """Returns the stored configuration, or the default one when nothing is stored."""

    @abstractmethod
    def save(self, config: Config) -> None:
        """Replaces the stored configuration."""


class InMemoryConfigStore(ConfigStore):
    def __init__(self, config: Optional[Config] = None) -> None:
        self._config = config or Config()

    def load(self) -> Config:
        return self._config

    def save(self, config: Config) -> None:
        self._config = config


class YamlConfigStore(ConfigStore):
    """Stores the configuration as a YAML mapping using the device's camelCase keys."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> Config:
        """Loads the configuration file.

        A missing file is not an error: the default configuration is returned
        and written on the first `save`. A file that cannot be parsed or
        validated is reported and replaced by the defaults as well, so a bad
        edit never prevents the monitor from starting.

        Returns:
            The stored `Config`, or `Config()` when unavailable.
        """
        with self._lock:
            if not os.path.exists(self._path):
                logger.info("No configuration found at %s, using defaults", self._path)
                return Config()
            try:
                with open(self._path, "r", encoding="utf-8") as file:
                    stored = yaml.safe_load(file) or {}
                return Config.model_validate(Config.canonicalize(stored))
            except (OSError, yaml.YAMLError, ValidationError, AttributeError) as ex:
                logger.error("Unable to load configuration from %s: %s", self._path, ex)
                return Config()

    def save(self, config: Config) -> None:
        with self._lock:
            directory = os.path.dirname(self._path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as file:
                yaml.safe_dump(config.to_wire(), file, sort_keys=True)
        logger.info("Configuration saved to %s", self._path)
