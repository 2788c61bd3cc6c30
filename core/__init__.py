"""
Core infrastructure module for REZoning Explorer.

This module provides the foundational components including configuration management,
logging setup, and custom exceptions.
"""

from .config import ApiConfig, DataConfig, ExploreConfig, StateConfig, Config
from .exceptions import (
    RezoningError,
    ConfigurationError,
    ValidationError,
    UnsupportedFilterKind,
    NetworkError,
    PreconditionError,
)
from .logging_config import setup_logging

__all__ = [
    # Configuration
    'ApiConfig',
    'DataConfig',
    'ExploreConfig',
    'StateConfig',
    'Config',

    # Exceptions
    'RezoningError',
    'ConfigurationError',
    'ValidationError',
    'UnsupportedFilterKind',
    'NetworkError',
    'PreconditionError',

    # Logging
    'setup_logging',
]

# Version info
__version__ = "1.0.0"
