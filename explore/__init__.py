"""
Explore page for REZoning Explorer.

Query-string state, filter encoding, the zone fetch state machine and the
coordinator composing them, plus the Dash layout and callbacks on top.
"""

from .coordinator import ExploreCoordinator, derive_lcoe_range
from .filter_encoder import encode_filter, encode_filters
from .panel_data import Filter
from .query_state import QueryStateField, QueryStateStore
from .sessions import ExploreSessions, get_explore_coordinator
from .zone_fetch import Failed, FetchRequest, Idle, Loading, Ready, ZoneFetchMachine

__all__ = [
    'ExploreCoordinator',
    'derive_lcoe_range',
    'ExploreSessions',
    'get_explore_coordinator',
    'encode_filter',
    'encode_filters',
    'Filter',
    'QueryStateField',
    'QueryStateStore',
    'FetchRequest',
    'ZoneFetchMachine',
    'Idle',
    'Loading',
    'Ready',
    'Failed',
]
