"""
Core utilities shared by every layer: errors, configuration and logging.
"""

from .config import LibraryConfig, load_config
from .errors import (
    LibraryError,
    ValidationError,
    NotFoundError,
    StoreError,
    ConfigurationError,
)

__all__ = [
    'LibraryConfig',
    'load_config',
    'LibraryError',
    'ValidationError',
    'NotFoundError',
    'StoreError',
    'ConfigurationError',
]
