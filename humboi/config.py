"""
Configuration management for humboi.

Loads config.yaml from the humboi home directory ($HUMBOI_HOME, default
~/.config/humboi). The file holds the store client settings; it must be
present before anything connects.
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from humboi.errors import ConfigError

DEFAULT_DATABASE_NAME = "datomic-docs-tutorial"


def get_humboi_home() -> Path:
    """Return the humboi home directory."""
    home = os.environ.get("HUMBOI_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/humboi").expanduser()


@dataclass(frozen=True)
class HumboiConfig:
    """Store client configuration."""
    backend: str = "sqlite"
    database_name: str = DEFAULT_DATABASE_NAME
    sqlite_path: str = "~/.local/share/humboi"
    project: Optional[str] = None
    dataset_prefix: str = ""
    location: str = "US"
    log_level: str = "INFO"
    log_format: str = "pretty"
    env_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HumboiConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_config_dict(home: Path) -> dict[str, Any]:
    """Config written by `humboi init`."""
    return {
        "backend": "sqlite",
        "database_name": DEFAULT_DATABASE_NAME,
        "sqlite_path": "~/.local/share/humboi",
        "project": None,
        "dataset_prefix": "",
        "location": "US",
        "log_level": "INFO",
        "log_format": "pretty",
        "env_file": str(home / ".env"),
    }


def load_config(config_path: Optional[Path] = None) -> HumboiConfig:
    """
    Load humboi configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to <humboi home>/config.yaml

    Returns:
        HumboiConfig instance

    Raises:
        ConfigError: If the file is missing, empty or invalid
    """
    if config_path is None:
        config_path = get_humboi_home() / "config.yaml"

    if not config_path.exists():
        raise ConfigError(
            f"humboi config.yaml not found at {config_path}. "
            "Run `humboi init` to create one."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if not data:
        raise ConfigError(f"Configuration file is empty: {config_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_path}")

    config = HumboiConfig.from_dict(data)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    return config
