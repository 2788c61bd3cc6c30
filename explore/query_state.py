"""
URL query-string state for the explorer.

A QueryStateField converts one typed value to and from a single URL query
parameter. A QueryStateStore binds a set of fields to one query string so the
whole explore state is shareable, bookmarkable and restorable on load:

    store = QueryStateStore([area_field, resource_field], publish=push_url)
    store.sync('areaId=KEN&resourceId=Wind')   # navigation
    store.set('resourceId', 'Solar PV')        # UI edit, republishes the URL
"""

import logging
import threading
from collections.abc import Callable as CallableABC
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, quote

from core.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

Hydrator = Callable[[str], Any]
Dehydrator = Callable[[Any], Optional[str]]


def _identity_hydrator(raw: str) -> Any:
    return raw


def _default_dehydrator(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class QueryStateField:
    """
    Bidirectional codec between a typed value and one query parameter.

    hydrate() never raises: missing input yields the default, and malformed or
    rejected input falls back to the default with a ValidationError logged and
    kept in ``last_error``.
    """

    def __init__(
        self,
        key: str,
        default: Any = None,
        hydrator: Optional[Hydrator] = None,
        dehydrator: Optional[Dehydrator] = None,
        validator: Any = None,
    ):
        if not key:
            raise ConfigurationError("Query state field requires a key", field='key')
        self.key = key
        self.default = default
        self.hydrator = hydrator or _identity_hydrator
        self.dehydrator = dehydrator or _default_dehydrator
        self.validator = validator
        self.last_error: Optional[ValidationError] = None

    def is_valid(self, value: Any) -> bool:
        """Check value against the validator (predicate or enumeration)."""
        if self.validator is None:
            return True
        if isinstance(self.validator, CallableABC):
            return bool(self.validator(value))
        return value in self.validator

    def _reject(self, message: str, value: Any) -> Any:
        self.last_error = ValidationError(message, field=self.key, value=value)
        logger.warning(f"{self.last_error}; using default")
        return self.default

    def hydrate(self, raw: Optional[str]) -> Any:
        """Parse a raw query value into the typed value."""
        self.last_error = None
        if raw is None:
            return self.default

        try:
            value = self.hydrator(raw)
        except (ValueError, TypeError, KeyError, IndexError) as e:
            return self._reject(f"Malformed value for '{self.key}': {e}", raw)

        if value is None:
            return self.default

        try:
            valid = self.is_valid(value)
        except (ValueError, TypeError) as e:
            return self._reject(f"Could not validate '{self.key}': {e}", raw)
        if not valid:
            return self._reject(f"Value not allowed for '{self.key}'", raw)

        return value

    def dehydrate(self, value: Any) -> Optional[str]:
        """Render the typed value; None omits the parameter."""
        raw = self.dehydrator(value)
        if raw is None or raw is False or raw == '':
            return None
        return str(raw)

    def __repr__(self) -> str:
        return f"QueryStateField(key={self.key!r}, default={self.default!r})"


class QueryStateStore:
    """
    Ordered set of QueryStateFields bound to one URL query string.

    ``set`` is the only mutation path from the UI; ``sync`` handles external
    changes such as back/forward navigation. The published string is a pure
    function of the current field values.
    """

    def __init__(
        self,
        fields: Iterable[QueryStateField] = (),
        query_string: str = '',
        publish: Optional[Callable[[str], None]] = None,
    ):
        self._fields: Dict[str, QueryStateField] = {}
        self._segments: Dict[str, Optional[str]] = {}
        self._values: Dict[str, Any] = {}
        self._publish = publish
        self._lock = threading.RLock()
        self.errors: Dict[str, ValidationError] = {}

        for field in fields:
            self.register(field)

        if query_string:
            self.sync(query_string)

    # --- registration ---

    def register(self, field: QueryStateField) -> None:
        """Add a field; keys must be unique across the store."""
        with self._lock:
            if field.key in self._fields:
                raise ConfigurationError(f"Duplicate query state key '{field.key}'", field=field.key)
            self._fields[field.key] = field
            self._segments[field.key] = None
            self._values[field.key] = field.default

    def unregister(self, key: str) -> None:
        with self._lock:
            self._fields.pop(key, None)
            self._segments.pop(key, None)
            self._values.pop(key, None)
            self.errors.pop(key, None)

    def has(self, key: str) -> bool:
        return key in self._fields

    @property
    def keys(self) -> List[str]:
        return list(self._fields)

    def field(self, key: str) -> QueryStateField:
        try:
            return self._fields[key]
        except KeyError:
            raise KeyError(f"Unknown query state key '{key}'") from None

    # --- reading ---

    def get(self, key: str) -> Any:
        """Current hydrated value for key."""
        with self._lock:
            self.field(key)
            return self._values[key]

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    @property
    def query_string(self) -> str:
        """Present segments in registration order joined with '&'."""
        with self._lock:
            parts = [
                f"{quote(key, safe='')}={quote(segment, safe=',|')}"
                for key, segment in self._segments.items()
                if segment is not None
            ]
        return '&'.join(parts)

    # --- writing ---

    def set(self, key: str, value: Any) -> str:
        """
        Store a new value and republish the full query string.

        Returns:
            The republished query string
        """
        with self._lock:
            field = self.field(key)
            self._values[key] = value
            self._segments[key] = field.dehydrate(value)
            self.errors.pop(key, None)
            query_string = self.query_string

        self._notify(query_string)
        return query_string

    def update(self, values: Dict[str, Any]) -> str:
        """Set several fields and publish once."""
        with self._lock:
            for key, value in values.items():
                field = self.field(key)
                self._values[key] = value
                self._segments[key] = field.dehydrate(value)
                self.errors.pop(key, None)
            query_string = self.query_string

        self._notify(query_string)
        return query_string

    def sync(self, query_string: Optional[str]) -> List[str]:
        """
        Re-hydrate every field from an externally changed query string.

        Fields whose raw segment is unchanged keep their memoised value.

        Returns:
            Keys whose raw segment changed
        """
        raw_values = self.parse(query_string)
        changed = []

        with self._lock:
            for key, field in self._fields.items():
                raw = raw_values.get(key)
                if raw == self._segments[key]:
                    continue
                value = field.hydrate(raw)
                self._values[key] = value
                if field.last_error is not None:
                    self.errors[key] = field.last_error
                    # Rejected input is not part of the state
                    self._segments[key] = field.dehydrate(value)
                else:
                    self.errors.pop(key, None)
                    self._segments[key] = raw
                changed.append(key)

        if changed:
            logger.debug(f"Query state re-hydrated keys: {changed}")
        return changed

    def revalidate(self, key: str) -> bool:
        """
        Re-run validation for a field whose allowed set may have changed.

        Returns:
            True if the value was reset to its default
        """
        with self._lock:
            field = self.field(key)
            value = self._values[key]
            if value == field.default or field.is_valid(value):
                return False
        self.set(key, field.default)
        return True

    @staticmethod
    def parse(query_string: Optional[str]) -> Dict[str, str]:
        """Split a query string into key -> raw value; the last duplicate wins."""
        if not query_string:
            return {}
        pairs: List[Tuple[str, str]] = parse_qsl(query_string.lstrip('?'), keep_blank_values=False)
        return dict(pairs)

    def _notify(self, query_string: str) -> None:
        if self._publish is not None:
            self._publish(query_string)
