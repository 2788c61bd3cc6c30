"""
StateManager - persistent key-value store for explorer session state.

Wraps a StateBackend with key prefixing so the explorer can persist small
values (such as the onboarding tour step) the same way regardless of whether
they live in memory, Redis or a database.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from state_backends import (
    StateBackend,
    MemoryStateBackend,
    RedisStateBackend,
    DatabaseStateBackend,
    StateBackendConfig
)

logger = logging.getLogger(__name__)


@dataclass
class StateManagerConfig:
    """Configuration for StateManager"""
    backend_type: str = 'memory'  # 'memory', 'redis', 'database'
    default_ttl: int = 0
    key_prefix: str = 'rezoning'
    redis_url: str = 'redis://localhost:6379/0'
    database_url: str = 'sqlite:///explore_state.db'
    max_value_size: int = 1024 * 1024


class StateManager:
    """
    Prefixed key-value access over a configurable storage backend.
    """

    def __init__(self, config: Optional[StateManagerConfig] = None,
                 backend: Optional[StateBackend] = None):
        self.config = config or StateManagerConfig()
        self.backend = backend or self._create_backend()

        logger.info(f"StateManager initialized with {self.config.backend_type} backend")

    def _create_backend(self) -> StateBackend:
        """Create appropriate backend based on configuration"""
        backend_config = StateBackendConfig(
            ttl_default=self.config.default_ttl,
            max_value_size=self.config.max_value_size
        )

        if self.config.backend_type == 'memory':
            return MemoryStateBackend(backend_config)
        elif self.config.backend_type == 'redis':
            return RedisStateBackend(backend_config, self.config.redis_url)
        elif self.config.backend_type == 'database':
            return DatabaseStateBackend(backend_config, self.config.database_url)
        else:
            logger.warning(f"Unknown backend type: {self.config.backend_type}, falling back to memory")
            return MemoryStateBackend(backend_config)

    def _build_key(self, key: str) -> str:
        return f"{self.config.key_prefix}:{key}" if self.config.key_prefix else key

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get the value stored under key.

        Args:
            key: Unprefixed key (e.g., 'site-tour')
            default: Returned when nothing is stored

        Returns:
            The stored value, or default
        """
        value = self.backend.get(self._build_key(key))
        if value is None:
            return default
        logger.debug(f"Retrieved value for {key}")
        return value

    def set_value(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store value under key; returns False when the backend refused it."""
        success = self.backend.set(self._build_key(key), value, ttl)
        if success:
            logger.debug(f"Stored value for {key}")
        else:
            logger.error(f"Failed to store value for {key}")
        return success

    def delete_value(self, key: str) -> bool:
        """Delete the value stored under key"""
        return self.backend.delete(self._build_key(key))

    def has_value(self, key: str) -> bool:
        """Check if a value is stored under key"""
        return self.backend.exists(self._build_key(key))

    def get_backend_stats(self) -> Dict[str, Any]:
        """Get backend statistics if available"""
        if hasattr(self.backend, 'get_stats'):
            stats = self.backend.get_stats()
            stats['backend_type'] = self.config.backend_type
            return stats
        return {
            'backend_type': self.config.backend_type,
            'stats_available': False
        }


# Global StateManager instance
_state_manager_instance: Optional[StateManager] = None


def get_state_manager(config: Optional[StateManagerConfig] = None) -> StateManager:
    """
    Get the global StateManager instance (singleton pattern).

    Args:
        config: Optional configuration for the StateManager

    Returns:
        The global StateManager instance
    """
    global _state_manager_instance

    if _state_manager_instance is None:
        _state_manager_instance = StateManager(config)
        logger.info("Created global StateManager instance")
    elif config is not None:
        logger.warning("StateManager already initialized, ignoring new config")

    return _state_manager_instance


def refresh_state_manager(config: Optional[StateManagerConfig] = None) -> StateManager:
    """
    Force refresh of the global StateManager instance.
    Useful for testing or configuration changes.
    """
    global _state_manager_instance
    _state_manager_instance = None
    return get_state_manager(config)
