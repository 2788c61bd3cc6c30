"""
Catalogue data for the explore panel.

Resources, input kinds, scoring weights, economic (LCOE) parameters, zone
types and the Filter model shared by the query state, the filter encoder and
the coordinator.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# --- Resources ---

WIND = 'Wind'
OFFSHORE = 'Off-Shore Wind'
SOLAR = 'Solar PV'

API_RESOURCE_NAMES = {
    WIND: 'wind',
    SOLAR: 'solar',
    OFFSHORE: 'offshore',
}

RESOURCE_LIST = [
    {'name': SOLAR, 'icon_path': 'assets/graphics/content/resourceIcons/solar-pv.svg'},
    {'name': WIND, 'icon_path': 'assets/graphics/content/resourceIcons/wind.svg'},
    {'name': OFFSHORE, 'icon_path': 'assets/graphics/content/resourceIcons/wind-offshore.svg'},
]

# --- Input kinds ---

SLIDER = 'slider'
BOOL = 'boolean'
MULTI = 'multi-select'
TEXT = 'text'
DROPDOWN = 'dropdown'

GRID_OPTIONS = [9, 25, 50]
DEFAULT_RANGE = (0, 1000000)

# Backend schema type -> input kind
ALLOWED_TYPES = {
    'range_filter': SLIDER,
    'boolean': BOOL,
}

UNIT_MULTIPLIERS = {
    'km': 1000,
}

# --- Zone types ---

ZONE_TYPES = [{'name': 'Boundaries', 'type': 'boundaries'}] + [
    {'name': f'Grid {size}', 'type': 'grid', 'size': size} for size in GRID_OPTIONS
]


def get_zone_type(name: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the zone type definition with the given name, if any."""
    for zone_type in ZONE_TYPES:
        if zone_type['name'] == name:
            return zone_type
    return None


# --- Weights ---

WEIGHTS_LIST = [
    {'id': 'lcoe_gen', 'name': 'LCOE Generation', 'default': 1, 'range': (0, 1)},
    {'id': 'lcoe_transmission', 'name': 'LCOE Transmission', 'default': 1, 'range': (0, 1)},
    {'id': 'lcoe_road', 'name': 'LCOE Road', 'default': 1, 'range': (0, 1)},
    {'id': 'distance_load', 'name': 'Distance to Load Centers', 'default': 1, 'range': (0, 1)},
    {'id': 'pop_density', 'name': 'Population Density', 'default': 1, 'range': (0, 1)},
    {'id': 'slope', 'name': 'Slope', 'default': 1, 'range': (0, 1)},
]

# --- Economic parameters ---

LCOE_LIST = [
    {'id': 'turbine_type', 'name': 'Turbine / Solar Unit Type', 'range': (0, 3)},
    {'id': 'crf', 'name': 'Capital Recovery Factor'},
    {'id': 'cg', 'name': 'Generation - capital [USD/kW]'},
    {'id': 'omfg', 'name': 'Generation - fixed O&M [USD/MW/y]'},
    {'id': 'omvg', 'name': 'Generation - variable O&M [USD/MWh]'},
    {'id': 'ct', 'name': 'Transmission (land cabling) - capital [USD/MW/km]'},
    {'id': 'omft', 'name': 'Transmission - fixed O&M [USD/km]'},
    {'id': 'cs', 'name': 'Substation - capital [USD / two substations (per new transmission connection) ]'},
    {'id': 'cr', 'name': 'Road - capital [USD/km]'},
    {'id': 'omfr', 'name': 'Road - fixed O&M [USD/km]'},
    {'id': 'decom', 'name': 'Decommission % rate'},
    {'id': 'i', 'name': 'Economic discount rate', 'range': (0.1, 100)},
    {'id': 'n', 'name': 'Lifetime [years]', 'range': (1, 100)},
    {'id': 'landuse', 'name': 'Land Use Factor', 'range': (0, float('inf'))},
    {'id': 'tlf', 'name': 'Technical Loss Factor', 'range': (0, 1)},
    {'id': 'uf', 'name': 'Unavailability Factor', 'range': (0, 1)},
]

LCOE_PRESETS = {
    'default': {
        'turbine_type': 0,
        'crf': 1,
        'cg': 2000,
        'omfg': 50000,
        'omvg': 4,
        'ct': 1000,
        'omft': 0,
        'cs': 70000,
        'cr': 400000,
        'omfr': 0,
        'decom': 0,
        'i': 0.2,
        'n': 25,
    }
}


def default_lcoe(preset: str = 'default') -> Dict[str, float]:
    """LCOE parameter id -> preset value, for parameters the preset defines."""
    values = LCOE_PRESETS.get(preset, {})
    return {p['id']: values[p['id']] for p in LCOE_LIST if p['id'] in values}


# --- Filters ---

@dataclass
class Filter:
    """A user-adjustable filter and its current value.

    ``value`` is a ``{'min', 'max'}`` mapping for range sliders, a scalar for
    plain sliders and booleans, and a list of strings for select kinds.
    ``applicable_resources`` holds API resource names; None applies everywhere.
    """
    id: str
    name: str = ''
    kind: str = SLIDER
    active: bool = True
    is_range: bool = False
    value: Any = None
    range: Optional[Tuple[float, float]] = None
    options: Optional[List[str]] = None
    unit: Optional[str] = None
    applicable_resources: Optional[FrozenSet[str]] = None
    info: Optional[str] = None

    def __post_init__(self):
        if self.range is not None:
            self.range = tuple(self.range)
        if self.options is not None:
            self.options = list(self.options)
        if self.applicable_resources is not None:
            self.applicable_resources = frozenset(self.applicable_resources)

    def applies_to(self, resource: Optional[str]) -> bool:
        """Whether this filter is relevant for the given resource display name."""
        if self.applicable_resources is None:
            return True
        return API_RESOURCE_NAMES.get(resource) in self.applicable_resources

    def range_value(self) -> Optional[Tuple[Any, Any]]:
        if isinstance(self.value, Mapping) and 'min' in self.value and 'max' in self.value:
            return self.value['min'], self.value['max']
        return None

    def is_full_range(self) -> bool:
        """True when a range value spans the whole declared range."""
        bounds = self.range_value()
        if bounds is None or self.range is None:
            return False
        return bounds[0] == self.range[0] and bounds[1] == self.range[1]

    def is_valid_range(self) -> bool:
        """True when min <= max and both lie within the declared range."""
        bounds = self.range_value()
        if bounds is None:
            return False
        low, high = bounds
        try:
            if low > high:
                return False
            if self.range is not None and (low < self.range[0] or high > self.range[1]):
                return False
        except TypeError:
            return False
        return True


def check_included(filter_obj: Filter, resource: Optional[str]) -> bool:
    """Whether a filter applies to the selected resource."""
    return filter_obj.applies_to(resource)


def filters_from_schema(schema: Mapping[str, Mapping[str, Any]],
                        ranges: Optional[Mapping[str, Sequence[float]]] = None) -> List[Filter]:
    """
    Build Filter objects from the API filter schema.

    Args:
        schema: Filter id -> descriptor with 'type', 'title', 'unit', 'energy_type'
        ranges: Optional filter id -> [min, max] for the selected area

    Returns:
        Filters for descriptor types the explorer knows how to edit,
        in schema order.
    """
    ranges = ranges or {}
    filters = []

    for filter_id, descriptor in schema.items():
        kind = ALLOWED_TYPES.get(descriptor.get('type'))
        if kind is None:
            logger.debug(f"Skipping filter {filter_id} with unsupported type {descriptor.get('type')}")
            continue

        energy_type = descriptor.get('energy_type')
        common = dict(
            id=filter_id,
            name=descriptor.get('title', filter_id),
            kind=kind,
            active=True,
            unit=descriptor.get('unit'),
            applicable_resources=frozenset(energy_type) if energy_type is not None else None,
            info=descriptor.get('description'),
        )

        if kind == SLIDER:
            low, high = ranges.get(filter_id) or DEFAULT_RANGE
            filters.append(Filter(
                is_range=True,
                value={'min': low, 'max': high},
                range=(low, high),
                **common
            ))
        else:
            filters.append(Filter(is_range=False, value=True, **common))

    return filters
