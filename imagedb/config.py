"""
Configuration management for the image database.

Settings live in a YAML file (``imagedb.yml`` by default) and describe
where the database, usage file and image folder are kept.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from .core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "imagedb.yml"


@dataclass
class ImageDbConfig:
    """Configuration values used while running actions."""

    database: str = "images.dat"  # Gzipped JSON tree
    usage_file: str = "used.dat"  # Gzipped JSON list of used images
    image_folder: str = "images"
    name_format: str = "image{num}{ext}"  # {num} is a free number, {ext} the extension
    relative_base: Optional[str] = None  # None means the working directory
    show_json: bool = False  # Also write uncompressed .json copies

    def get_relative_path(self, path: str) -> Path:
        """Resolve a configured path against ``relative_base``."""
        return Path(self.relative_base or "") / path

    @property
    def database_path(self) -> Path:
        return self.get_relative_path(self.database)

    @property
    def usage_file_path(self) -> Path:
        return self.get_relative_path(self.usage_file)

    @property
    def image_folder_path(self) -> Path:
        return self.get_relative_path(self.image_folder)

    def relative_to_image_folder(self, path: str) -> str:
        """Convert a file path to the form stored in the tree."""
        return os.path.relpath(path, self.image_folder_path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ImageDbConfig':
        """Create from dictionary, rejecting unknown keys."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}", key=unknown[0])
        return cls(**data)

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the configuration is usable."""
        errors = []
        if "{num}" not in self.name_format:
            errors.append(f"name_format must contain '{{num}}', got {self.name_format!r}")
        for name in ("database", "usage_file", "image_folder"):
            if not getattr(self, name):
                errors.append(f"{name} must not be empty")
        if self.database_path == self.usage_file_path:
            errors.append("database and usage_file must be different files")
        return errors


class ConfigManager:
    """Loads, updates and saves the configuration file.

    Two views are kept apart: the values stored in the file, which
    :meth:`update` and :meth:`save` work on, and the values used for a run,
    which :meth:`load` returns with ``IMAGEDB_*`` environment overrides
    applied. Overrides are never written back to the file.
    """

    ENV_PREFIX = "IMAGEDB_"
    ENV_KEYS = ("database", "usage_file", "image_folder", "relative_base")

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config manager.

        Args:
            config_path: Path to configuration file
        """
        self.console = Console()
        self.config_path = Path(config_path or DEFAULT_CONFIG_FILE)
        self._stored: Optional[ImageDbConfig] = None
        self._config: Optional[ImageDbConfig] = None

    def stored(self) -> ImageDbConfig:
        """
        Configuration as written in the file, or the defaults.

        Returns:
            File configuration without environment overrides
        """
        if self._stored is not None:
            return self._stored

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Could not parse {self.config_path}: {e}") from e
            if data is not None and not isinstance(data, dict):
                raise ConfigError(f"Expected a mapping in {self.config_path}")
            self._stored = ImageDbConfig.from_dict(data)
            logger.debug(f"Loaded config from {self.config_path}")
        else:
            self._stored = ImageDbConfig()
            logger.debug("Using default configuration")
        return self._stored

    def load(self) -> ImageDbConfig:
        """
        Load the configuration used for a run.

        Returns:
            Copy of the file configuration with environment overrides applied
        """
        if self._config is None:
            self._config = replace(self.stored(), **self._env_overrides())
        return self._config

    def save(self, config: Optional[ImageDbConfig] = None) -> Path:
        """
        Save configuration to file.

        Args:
            config: Configuration to save (uses the file values if None)

        Returns:
            Path written to
        """
        config = config or self.stored()
        with open(self.config_path, 'w') as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
        self._stored = config
        self._config = None
        logger.info(f"Saved config to {self.config_path}")
        return self.config_path

    def update(self, **kwargs) -> ImageDbConfig:
        """
        Update parameters of the file configuration.

        Args:
            **kwargs: Parameters to update

        Returns:
            Updated file configuration, not yet saved
        """
        known = {f.name for f in fields(ImageDbConfig)}
        for key in kwargs:
            if key not in known:
                raise ConfigError(f"Unknown parameter '{key}'", key=key)
        self._stored = replace(self.stored(), **kwargs)
        self._config = None
        return self._stored

    def display(self, config: Optional[ImageDbConfig] = None):
        """
        Display configuration in a formatted panel.

        Args:
            config: Configuration to display (uses current if None)
        """
        config = config or self.load()
        yaml_str = yaml.safe_dump(config.to_dict(), default_flow_style=False)
        syntax = Syntax(yaml_str, "yaml", theme="monokai", line_numbers=True)
        panel = Panel(
            syntax,
            title=f"[bold cyan]{self.config_path}[/bold cyan]",
            border_style="cyan"
        )
        self.console.print(panel)

    def _env_overrides(self) -> Dict[str, str]:
        """Collect environment variable overrides."""
        overrides = {}
        for key in self.ENV_KEYS:
            if value := os.getenv(f"{self.ENV_PREFIX}{key.upper()}"):
                overrides[key] = value
                logger.debug(f"Applied env override: {key}={value}")
        return overrides


def parse_value(key: str, value: str) -> Any:
    """Convert a command-line string to the type of a config field."""
    if key not in {f.name for f in fields(ImageDbConfig)}:
        raise ConfigError(f"Unknown parameter '{key}'", key=key)
    if key == "show_json":
        return value.lower() in ("true", "yes", "1")
    if key == "relative_base" and value.lower() in ("", "none", "null"):
        return None
    return value


def get_config(config_path: Optional[Path] = None) -> ImageDbConfig:
    """
    Get current configuration.

    Args:
        config_path: Optional path to config file

    Returns:
        Current configuration
    """
    return ConfigManager(config_path).load()


def save_config(config: ImageDbConfig, config_path: Optional[Path] = None) -> Path:
    """
    Save configuration.

    Args:
        config: Configuration to save
        config_path: Optional path to config file

    Returns:
        Path written to
    """
    return ConfigManager(config_path).save(config)


def create_default_config_file(path: Optional[Path] = None) -> Path:
    """
    Create a default configuration file.

    Args:
        path: Path for config file

    Returns:
        Path written to
    """
    return ConfigManager(path).save(ImageDbConfig())
