"""
Zone fetch lifecycle for the explore page.

ZoneFetchMachine is a small reducer-style state machine around one zone
request at a time:

    Idle --submit--> Loading --success--> Ready
                             --failure--> Failed
    any  --invalidate--> Idle

A submit while Loading supersedes the running request ("last submit wins").
Each completion is tagged with the request object that started it and is
discarded when that request is no longer current. Superseded network calls
are not interrupted; their result is simply ignored.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.exceptions import NetworkError

logger = logging.getLogger(__name__)

Zone = Dict[str, Any]


@dataclass(frozen=True, eq=False)
class FetchRequest:
    """Immutable zone request. Requests are compared by identity."""
    area: Mapping[str, Any]
    resource: str
    zone_type: Optional[Mapping[str, Any]]
    filter_string: str = ''
    weights: Mapping[str, float] = field(default_factory=dict)
    lcoe: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'weights', MappingProxyType(dict(self.weights)))
        object.__setattr__(self, 'lcoe', MappingProxyType(dict(self.lcoe)))

    @property
    def area_id(self) -> Any:
        return self.area.get('id')


# --- states ---

@dataclass(frozen=True)
class Idle:
    name = 'idle'


@dataclass(frozen=True)
class Loading:
    request: FetchRequest
    name = 'loading'


@dataclass(frozen=True)
class Ready:
    request: FetchRequest
    zones: Sequence[Zone]
    name = 'ready'


@dataclass(frozen=True)
class Failed:
    request: FetchRequest
    error: NetworkError
    name = 'failed'


FetchState = Any  # Idle | Loading | Ready | Failed

Fetcher = Callable[[FetchRequest], Sequence[Zone]]
Listener = Callable[[FetchState], None]


class ZoneFetchMachine:
    """
    Single-flight zone request state shared by every view of the zones.

    Args:
        fetcher: Blocking callable returning the zone features for a request
        executor: Executor running fetches; a small thread pool by default
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, executor: Optional[Executor] = None,
                 max_workers: int = 2):
        self._fetcher = fetcher
        self._executor = executor
        self._owns_executor = executor is None
        self._max_workers = max_workers
        self._state: FetchState = Idle()
        self._version = 0
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    # --- observation ---

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def version(self) -> int:
        """Number of transitions so far; changes whenever the state is replaced."""
        return self._version

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def is_idle(self) -> bool:
        return isinstance(self._state, Idle)

    def is_loading(self) -> bool:
        return isinstance(self._state, Loading)

    def is_ready(self) -> bool:
        return isinstance(self._state, Ready)

    def is_failed(self) -> bool:
        return isinstance(self._state, Failed)

    def get_data(self) -> Optional[Sequence[Zone]]:
        state = self._state
        return state.zones if isinstance(state, Ready) else None

    def get_error(self) -> Optional[NetworkError]:
        state = self._state
        return state.error if isinstance(state, Failed) else None

    def get_request(self) -> Optional[FetchRequest]:
        return getattr(self._state, 'request', None)

    # --- transitions ---

    def _apply(self, new_state: FetchState) -> List[Listener]:
        # Caller holds the lock
        self._state = new_state
        self._version += 1
        return list(self._listeners)

    def _notify(self, new_state: FetchState, listeners: List[Listener]) -> None:
        logger.debug(f"Zone fetch state -> {new_state.name}")
        for listener in listeners:
            if self._state is not new_state:
                # Overtaken by a later transition; its listeners run instead
                return
            try:
                listener(new_state)
            except Exception:
                logger.exception("Zone fetch listener failed")

    def _transition(self, new_state: FetchState) -> None:
        with self._lock:
            listeners = self._apply(new_state)
        self._notify(new_state, listeners)

    def _is_current(self, request: FetchRequest) -> bool:
        return isinstance(self._state, Loading) and self._state.request is request

    def start(self, request: FetchRequest) -> None:
        """Enter Loading for request, superseding any running request."""
        self._transition(Loading(request))

    def succeed(self, request: FetchRequest, zones: Sequence[Zone]) -> bool:
        """
        Apply a successful completion.

        Returns:
            False when the completion belongs to a superseded request
        """
        with self._lock:
            if not self._is_current(request):
                logger.debug("Discarding zones from a superseded request")
                return False
            new_state = Ready(request, tuple(zones))
            listeners = self._apply(new_state)
        self._notify(new_state, listeners)
        return True

    def fail(self, request: FetchRequest, error: Exception) -> bool:
        """
        Apply a failed completion.

        Returns:
            False when the completion belongs to a superseded request
        """
        if not isinstance(error, NetworkError):
            error = NetworkError(f"Zone request failed: {error}")
        with self._lock:
            if not self._is_current(request):
                logger.debug(f"Discarding failure from a superseded request: {error}")
                return False
            new_state = Failed(request, error)
            listeners = self._apply(new_state)
        logger.warning(f"Zone request failed: {error}")
        self._notify(new_state, listeners)
        return True

    def invalidate(self) -> None:
        """Drop any result or running request and return to Idle."""
        self._transition(Idle())

    def submit(self, request: FetchRequest) -> Future:
        """
        Start fetching zones for request in the background.

        Returns:
            Future of the fetch; its result is applied only while the request
            is still current.
        """
        if self._fetcher is None:
            raise RuntimeError("ZoneFetchMachine.submit requires a fetcher")

        self.start(request)
        future = self._get_executor().submit(self._fetcher, request)
        future.add_done_callback(lambda f: self._complete(request, f))
        return future

    def _complete(self, request: FetchRequest, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.fail(request, error)
        else:
            self.succeed(request, future.result())

    def _get_executor(self) -> Executor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix='zone-fetch'
                )
            return self._executor

    def shutdown(self, wait: bool = False) -> None:
        """Stop the owned thread pool."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
