"""YAML configuration access for the dungeon generator."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).with_name("dungeon.yaml")


class ConfigLoader:
    def __init__(self, config_file: str | os.PathLike[str] = DEFAULT_CONFIG_FILE):
        self.path = Path(config_file)
        self.config: dict[str, Any] = {}
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                self.config = yaml.safe_load(f) or {}
        else:
            logger.warning("Configuration file %s not found, using built-in defaults", self.path)
        if not isinstance(self.config, dict):
            raise ValueError(f"Configuration file {self.path} must contain a mapping at the top level.")

    def get(self, *keys, default=None):
        """
        Return the value stored under the nested ``keys`` path.
        When a key is missing:
          - raise KeyError if no default is provided
          - return the default otherwise
        """
        ref = self.config
        for key in keys:
            if isinstance(ref, dict) and key in ref:
                ref = ref[key]
            else:
                if default is not None:
                    return default
                raise KeyError(f"Configuration key {' -> '.join(keys)} not found and no default provided.")
        return ref

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level mapping section, empty when absent."""

        value = self.config.get(name) or {}
        if not isinstance(value, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping.")
        return dict(value)
