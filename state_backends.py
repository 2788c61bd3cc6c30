"""
State backend implementations for the persistent key-value store.

The explorer persists a handful of small values across sessions (for example
the onboarding tour step). Backends store JSON-serialisable values under string
keys with an optional TTL.
"""

import datetime
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Dict
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class StateBackendConfig:
    """Configuration for state backends"""
    ttl_default: int = 0  # 0 disables expiry
    max_key_size: int = 1000
    max_value_size: int = 1024 * 1024  # 1MB


class StateBackend(ABC):
    """Abstract base class for state storage backends"""

    def __init__(self, config: Optional[StateBackendConfig] = None):
        self.config = config or StateBackendConfig()

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Retrieve value by key"""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store value with optional TTL"""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if key exists"""

    @abstractmethod
    def clear(self) -> bool:
        """Clear all data (for testing)"""

    def _validate_key(self, key: str) -> bool:
        """Validate key format and size"""
        if not key or len(key) > self.config.max_key_size:
            return False
        return True

    def _effective_ttl(self, ttl: Optional[int]) -> Optional[int]:
        return ttl or self.config.ttl_default or None

    def _serialize_value(self, value: Any) -> str:
        """Serialize value to JSON string"""
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize value: {e}")
            raise

    def _deserialize_value(self, value_str: str) -> Any:
        """Deserialize JSON string to value"""
        try:
            return json.loads(value_str)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to deserialize value: {e}")
            return None


class MemoryStateBackend(StateBackend):
    """
    In-memory state backend for development and testing.
    Thread-safe; expired entries are dropped when they are read.
    """

    def __init__(self, config: Optional[StateBackendConfig] = None):
        super().__init__(config)
        self._store: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def _live_entry(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.get('expires_at') and time.time() > entry['expires_at']:
            del self._store[key]
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            logger.warning(f"Invalid key: {key}")
            return None

        with self._lock:
            entry = self._live_entry(key)
            return entry['value'] if entry else None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            logger.warning(f"Invalid key: {key}")
            return False

        try:
            serialized = self._serialize_value(value)
        except (TypeError, ValueError):
            return False
        if len(serialized) > self.config.max_value_size:
            logger.warning(f"Value too large for key {key}")
            return False

        effective_ttl = self._effective_ttl(ttl)
        with self._lock:
            self._store[key] = {
                # Stored as its JSON round-trip so reads match the other backends
                'value': json.loads(serialized),
                'expires_at': time.time() + effective_ttl if effective_ttl else None,
                'created_at': time.time()
            }

        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def clear(self) -> bool:
        with self._lock:
            self._store.clear()
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get backend statistics"""
        with self._lock:
            current_time = time.time()
            expired_keys = sum(
                1 for entry in self._store.values()
                if entry.get('expires_at') and current_time > entry['expires_at']
            )
            total_size = sum(len(self._serialize_value(entry['value'])) for entry in self._store.values())

            return {
                'total_keys': len(self._store),
                'expired_keys': expired_keys,
                'total_size_bytes': total_size,
                'backend_type': 'memory'
            }


class RedisStateBackend(StateBackend):
    """
    Redis-based state backend for deployments serving several workers.
    """

    def __init__(self, config: Optional[StateBackendConfig] = None,
                 redis_url: str = "redis://localhost:6379/0"):
        super().__init__(config)
        self.redis_url = redis_url
        self._client = None
        self._connect()

    def _connect(self):
        """Initialize Redis connection"""
        import redis

        try:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
            self._client.ping()
            logger.info(f"Connected to Redis at {self.redis_url}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            return None

        import redis

        try:
            value_str = self._client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis get error for key {key}: {e}")
            return None
        if value_str is None:
            return None
        return self._deserialize_value(value_str)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            return False

        import redis

        try:
            value_str = self._serialize_value(value)
        except (TypeError, ValueError):
            return False
        if len(value_str) > self.config.max_value_size:
            logger.warning(f"Value too large for key {key}")
            return False

        try:
            ttl_seconds = self._effective_ttl(ttl)
            if ttl_seconds:
                return bool(self._client.setex(key, ttl_seconds, value_str))
            return bool(self._client.set(key, value_str))
        except redis.RedisError as e:
            logger.error(f"Redis set error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        import redis

        try:
            return bool(self._client.delete(key))
        except redis.RedisError as e:
            logger.error(f"Redis delete error for key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        import redis

        try:
            return bool(self._client.exists(key))
        except redis.RedisError as e:
            logger.error(f"Redis exists error for key {key}: {e}")
            return False

    def clear(self) -> bool:
        """Clear all keys (use with caution)"""
        import redis

        try:
            return bool(self._client.flushdb())
        except redis.RedisError as e:
            logger.error(f"Redis clear error: {e}")
            return False


class DatabaseStateBackend(StateBackend):
    """
    Database-based state backend using SQLite/PostgreSQL.
    For persistent, queryable state storage.
    """

    def __init__(self, config: Optional[StateBackendConfig] = None,
                 db_url: str = "sqlite:///explore_state.db"):
        super().__init__(config)
        self.db_url = db_url
        self._engine = None
        self._connect()

    def _connect(self):
        """Initialize database connection and create the state table"""
        from sqlalchemy import create_engine, MetaData, Table, Column, String, Text, DateTime

        self._engine = create_engine(self.db_url)
        self._metadata = MetaData()

        self._state_table = Table('state_store', self._metadata,
            Column('key', String(1000), primary_key=True),
            Column('value', Text),
            Column('created_at', DateTime, default=datetime.datetime.utcnow),
            Column('expires_at', DateTime, nullable=True)
        )

        self._metadata.create_all(self._engine)

        logger.info(f"Connected to database at {self.db_url}")

    def _not_expired(self):
        return (
            (self._state_table.c.expires_at.is_(None)) |
            (self._state_table.c.expires_at > datetime.datetime.utcnow())
        )

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            return None

        from sqlalchemy import select
        from sqlalchemy.exc import SQLAlchemyError

        try:
            with self._engine.connect() as conn:
                stmt = select(self._state_table.c.value).where(
                    self._state_table.c.key == key
                ).where(self._not_expired())

                result = conn.execute(stmt).fetchone()
        except SQLAlchemyError as e:
            logger.error(f"Database get error for key {key}: {e}")
            return None
        if result:
            return self._deserialize_value(result[0])
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            return False

        from sqlalchemy.dialects.postgresql import insert as pg_insert
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert
        from sqlalchemy.exc import SQLAlchemyError

        try:
            value_str = self._serialize_value(value)
        except (TypeError, ValueError):
            return False
        if len(value_str) > self.config.max_value_size:
            logger.warning(f"Value too large for key {key}")
            return False

        expires_at = None
        effective_ttl = self._effective_ttl(ttl)
        if effective_ttl:
            expires_at = datetime.datetime.utcnow() + datetime.timedelta(seconds=effective_ttl)

        insert = sqlite_insert if self.db_url.startswith('sqlite') else pg_insert
        stmt = insert(self._state_table).values(
            key=key, value=value_str, expires_at=expires_at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['key'],
            set_=dict(value=stmt.excluded.value, expires_at=stmt.excluded.expires_at)
        )

        try:
            with self._engine.connect() as conn:
                conn.execute(stmt)
                conn.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database set error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        from sqlalchemy import delete
        from sqlalchemy.exc import SQLAlchemyError

        try:
            with self._engine.connect() as conn:
                stmt = delete(self._state_table).where(self._state_table.c.key == key)
                result = conn.execute(stmt)
                conn.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Database delete error for key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        from sqlalchemy import select
        from sqlalchemy.exc import SQLAlchemyError

        try:
            with self._engine.connect() as conn:
                stmt = select(self._state_table.c.key).where(
                    self._state_table.c.key == key
                ).where(self._not_expired())

                return conn.execute(stmt).fetchone() is not None
        except SQLAlchemyError as e:
            logger.error(f"Database exists error for key {key}: {e}")
            return False

    def clear(self) -> bool:
        """Clear all state data (use with caution)"""
        from sqlalchemy import delete
        from sqlalchemy.exc import SQLAlchemyError

        try:
            with self._engine.connect() as conn:
                conn.execute(delete(self._state_table))
                conn.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Database clear error: {e}")
            return False
