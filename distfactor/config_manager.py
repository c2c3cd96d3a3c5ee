"""
Configuration file loading.

Loads distfactor.yaml and deep merges distfactor.local.yaml overrides found
next to it.
"""

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)


class ConfigManager:
    """Load YAML configuration with automatic local overrides."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.ConfigManager")

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load a YAML file and merge its local overrides into it.

        For ``distfactor.yaml`` the overrides file is ``distfactor.local.yaml``
        in the same directory.

        Args:
            config_path: Path to the base configuration file

        Returns:
            Merged configuration dictionary

        Raises:
            FileNotFoundError: If the base file doesn't exist
            yaml.YAMLError: If either file is not valid YAML
            ValueError: If either file does not hold a mapping
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self.logger.debug(f"Loading configuration from: {config_path}")
        config = self._read_mapping(config_file)

        local_config_path = self.local_config_path(config_file)
        if local_config_path.exists():
            self.logger.info(f"Loading local configuration overrides from: {local_config_path}")
            config = self.deep_merge(config, self._read_mapping(local_config_path))
        else:
            self.logger.debug(f"No local configuration file found at {local_config_path}")

        return config

    def _read_mapping(self, path: Path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data is None:
            self.logger.warning(f"Configuration file is empty: {path}")
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return data

    @staticmethod
    def local_config_path(base_config_path: Path) -> Path:
        """distfactor.yaml -> distfactor.local.yaml, in the same directory."""
        return base_config_path.parent / f"{base_config_path.stem}.local.yaml"

    def deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Recursively merge ``override`` into a copy of ``base``.

        Example:
            base = {'network': {'advertise_host': 'a', 'worker_port': 0}}
            override = {'network': {'advertise_host': 'b'}}
            result = {'network': {'advertise_host': 'b', 'worker_port': 0}}
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = value
        return result
