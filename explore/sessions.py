"""
Per-page explore sessions.

Every page load gets its own session id, kept in a dcc.Store on the page, and
its own ExploreCoordinator: one query string and one zone fetch machine per
browser tab. Callbacks resolve the coordinator from that id.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from typing import Callable, Optional

from .coordinator import ExploreCoordinator

logger = logging.getLogger(__name__)


def _close(coordinator: ExploreCoordinator) -> None:
    coordinator.machine.invalidate()
    coordinator.machine.shutdown()


def generate_session_id() -> str:
    """Generate a unique session ID for a page."""
    return str(uuid.uuid4())


class ExploreSessions:
    """
    Coordinators keyed by session id.

    The least recently used session is dropped once max_sessions is reached.

    Args:
        factory: Builds the coordinator for a new session
        max_sessions: Number of sessions kept in memory
    """

    def __init__(self, factory: Callable[[], ExploreCoordinator], max_sessions: int = 100):
        self._factory = factory
        self._max_sessions = max_sessions
        self._coordinators: 'OrderedDict[str, ExploreCoordinator]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: Optional[str]) -> ExploreCoordinator:
        """Coordinator of a session, created on first use."""
        if not session_id:
            session_id = generate_session_id()
            logger.warning(f"Request without explore session, using new session {session_id}")

        with self._lock:
            coordinator = self._coordinators.get(session_id)
            if coordinator is not None:
                self._coordinators.move_to_end(session_id)
                return coordinator

            coordinator = self._factory()
            self._coordinators[session_id] = coordinator
            logger.debug(f"Created explore session {session_id}")

            while len(self._coordinators) > self._max_sessions:
                expired_id, expired = self._coordinators.popitem(last=False)
                _close(expired)
                logger.info(f"Dropped least recently used explore session {expired_id}")

        return coordinator

    def discard(self, session_id: str) -> bool:
        with self._lock:
            coordinator = self._coordinators.pop(session_id, None)
        if coordinator is None:
            return False
        _close(coordinator)
        return True

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._coordinators

    def __len__(self) -> int:
        with self._lock:
            return len(self._coordinators)

    def clear(self) -> None:
        with self._lock:
            coordinators = list(self._coordinators.values())
            self._coordinators.clear()
        for coordinator in coordinators:
            _close(coordinator)


# Global session registry
_sessions_instance: Optional[ExploreSessions] = None
_sessions_lock = threading.Lock()


def get_explore_sessions() -> ExploreSessions:
    """Get the global session registry, loading the shared explore data once."""
    global _sessions_instance

    with _sessions_lock:
        if _sessions_instance is None:
            from config_manager import get_config, get_state_manager_config
            from state_manager import get_state_manager
            from .coordinator import create_coordinator_factory

            config = get_config()
            factory = create_coordinator_factory(config, get_state_manager(get_state_manager_config()))
            _sessions_instance = ExploreSessions(factory, max_sessions=config.explore.max_sessions)
            logger.info("Created global explore session registry")

    return _sessions_instance


def get_explore_coordinator(session_id: Optional[str]) -> ExploreCoordinator:
    """Coordinator for the page session with the given id."""
    return get_explore_sessions().get(session_id)


def reset_explore_sessions() -> None:
    """Drop every session and the shared data (useful for testing)."""
    global _sessions_instance
    with _sessions_lock:
        if _sessions_instance is not None:
            _sessions_instance.clear()
        _sessions_instance = None
