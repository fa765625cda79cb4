"""
Configuration for the library core.

Values come from three layers, later layers winning:
1. LibraryConfig defaults
2. YAML file (config/library.yaml, or the path given)
3. LIBRARY_* environment variables (a .env file is loaded first)

Usage:
    from core.config import load_config

    config = load_config()
    print(config.max_page_size)
"""

import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config' / 'library.yaml'

ENV_PREFIX = 'LIBRARY_'

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


@dataclass
class LibraryConfig:
    """Runtime settings for search, relationship discovery and the API."""
    db_path: str = str(Path(__file__).parent.parent / 'data' / 'library.db')

    # Search
    default_page_size: int = 50
    max_page_size: int = 100
    strict_filters: bool = False

    # Relationship discovery
    similarity_threshold: float = 0.70
    neighbor_limit: int = 5

    # Smart collections
    smart_collection_limit: int = 500

    # Logging
    log_level: str = 'INFO'
    json_logs: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LibraryConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                keys=unknown
            )
        config = cls(**data)
        config.validate()
        return config

    def validate(self):
        """Check value ranges; raise ConfigurationError on the first problem."""
        if self.default_page_size < 1:
            raise ConfigurationError('default_page_size must be at least 1')
        if self.max_page_size < self.default_page_size:
            raise ConfigurationError(
                'max_page_size must be >= default_page_size',
                max_page_size=self.max_page_size,
                default_page_size=self.default_page_size
            )
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                'similarity_threshold must be within [-1, 1]',
                similarity_threshold=self.similarity_threshold
            )
        if self.neighbor_limit < 1:
            raise ConfigurationError('neighbor_limit must be at least 1')
        if self.smart_collection_limit < 1:
            raise ConfigurationError('smart_collection_limit must be at least 1')

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(value: str, target: Any, name: str) -> Any:
    """Convert an environment string to the type of the default value."""
    lowered = value.strip().lower()
    if isinstance(target, bool) or name == 'json_logs':
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(f'{ENV_PREFIX}{name.upper()} must be a boolean', value=value)
    try:
        if isinstance(target, int):
            return int(value)
        if isinstance(target, float):
            return float(value)
    except ValueError:
        raise ConfigurationError(
            f'{ENV_PREFIX}{name.upper()} must be a {type(target).__name__}',
            value=value
        )
    return value


def load_config(path: Union[str, Path, None] = None, env_file: Union[str, Path, None] = None) -> LibraryConfig:
    """
    Load configuration from YAML and environment.

    Args:
        path: YAML file. Defaults to config/library.yaml; a missing default
              file is fine, a missing explicit file is an error.
        env_file: Optional .env file to load before reading the environment.

    Returns:
        Validated LibraryConfig
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    data: Dict[str, Any] = {}
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f'Invalid YAML in {config_path}: {e}')
        if not isinstance(loaded, dict):
            raise ConfigurationError(f'{config_path} must contain a mapping')
        data.update(loaded.get('library', loaded))
    elif path:
        raise ConfigurationError(f'Config file not found: {config_path}')

    defaults = LibraryConfig()
    for f in fields(LibraryConfig):
        raw = os.getenv(f'{ENV_PREFIX}{f.name.upper()}')
        if raw is not None and raw != '':
            data[f.name] = _coerce(raw, getattr(defaults, f.name), f.name)

    return LibraryConfig.from_dict(data)
