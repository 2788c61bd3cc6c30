"""
Query-state field schemas for explore state.

Factories producing QueryStateFields for the values the explore page keeps in
the URL: selected identifiers, the zone score and LCOE output filters, and one
field per filter, weight and economic parameter.
"""

import math
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional, Sequence

from .filter_encoder import format_number
from .panel_data import BOOL, DEFAULT_RANGE, DROPDOWN, MULTI, SLIDER, Filter
from .query_state import QueryStateField

ZONE_SCORE_KEY = 'maxZoneScore'
LCOE_RANGE_KEY = 'maxLCOE'
AREA_KEY = 'areaId'
RESOURCE_KEY = 'resourceId'
ZONE_TYPE_KEY = 'zoneId'

ACTIVE_SEPARATOR = '|'


def parse_number(raw: str):
    """Parse a finite number; integral values come back as int."""
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"'{raw}' is not a finite number")
    return int(value) if value.is_integer() else value


def parse_range(raw: str) -> dict:
    """Parse ``"min,max"`` into a ``{'min', 'max'}`` mapping."""
    parts = raw.split(',')
    if len(parts) != 2:
        raise ValueError(f"'{raw}' is not a 'min,max' range")
    return {'min': parse_number(parts[0]), 'max': parse_number(parts[1])}


def format_range(value: Mapping) -> str:
    return f"{format_number(value['min'])},{format_number(value['max'])}"


def _parse_bool(raw: str) -> bool:
    if raw == 'true':
        return True
    if raw == 'false':
        return False
    raise ValueError(f"'{raw}' is not a boolean")


def _ordered_range(f: Filter) -> bool:
    return f.value['min'] <= f.value['max']


# --- identifiers ---

def id_field(key: str, validator: Any = None, default: Optional[str] = None) -> QueryStateField:
    """Scalar identifier (area id, resource name, zone type name)."""
    return QueryStateField(key, default=default, validator=validator)


# --- output range filters ---

def zone_score_filter(value: Optional[Mapping] = None) -> Filter:
    return Filter(
        id='zone-score-range',
        name='Zone Score Range',
        kind=SLIDER,
        active=True,
        is_range=True,
        value=dict(value) if value else {'min': 0, 'max': 1},
        range=(0, 1),
        info=(
            'A sum of scores for multiple criteria normalized from 0 to 1 and weighted by '
            'user-defined weights for each zone. The zone score filter excludes zones with '
            'scores below the user-defined threshold.'
        ),
    )


def lcoe_range_filter(value: Optional[Mapping] = None,
                      default_range: Sequence[float] = DEFAULT_RANGE) -> Filter:
    return Filter(
        id='lcoe-range',
        name='LCOE Range',
        kind=SLIDER,
        active=value is not None,
        is_range=True,
        value=dict(value) if value else None,
        range=(value['min'], value['max']) if value else tuple(default_range),
        unit='USD/MWh',
        info='The LCOE filter excludes zones with LCOE estimates outside the user-defined range.',
    )


def _dehydrate_active_range(f: Optional[Filter]) -> Optional[str]:
    # Inactive output filters are folded into absence of the parameter
    if f is None or not f.active or f.value is None:
        return None
    return format_range(f.value)


def zone_score_field() -> QueryStateField:
    return QueryStateField(
        ZONE_SCORE_KEY,
        default=zone_score_filter(),
        hydrator=lambda raw: zone_score_filter(parse_range(raw)),
        dehydrator=_dehydrate_active_range,
        validator=lambda f: f.is_valid_range(),
    )


def lcoe_range_field(default_range: Sequence[float] = DEFAULT_RANGE) -> QueryStateField:
    return QueryStateField(
        LCOE_RANGE_KEY,
        default=lcoe_range_filter(None, default_range),
        hydrator=lambda raw: lcoe_range_filter(parse_range(raw), default_range),
        dehydrator=_dehydrate_active_range,
        validator=_ordered_range,
    )


# --- per-filter state ---

def _format_filter_value(f: Filter) -> str:
    if f.kind == SLIDER:
        if f.range_value() is not None:
            return format_range(f.value)
        return format_number(f.value)
    if f.kind == BOOL:
        return format_number(bool(f.value))
    if f.kind in (MULTI, DROPDOWN):
        values = f.value if isinstance(f.value, (list, tuple)) else [f.value]
        return ','.join(str(v) for v in values)
    return '' if f.value is None else str(f.value)


def _filter_value_parser(template: Filter) -> Callable[[str], Any]:
    if template.kind == SLIDER:
        if template.is_range:
            return parse_range
        return parse_number
    if template.kind == BOOL:
        return _parse_bool
    if template.kind in (MULTI, DROPDOWN) and isinstance(template.value, (list, tuple)):
        return lambda raw: raw.split(',') if raw else []
    return lambda raw: raw


def _filter_value_allowed(f: Filter) -> bool:
    if f.is_range:
        return f.is_valid_range()
    if f.kind == MULTI and f.options is not None:
        return set(f.value).issubset(f.options)
    if f.kind == DROPDOWN and f.options is not None:
        values = f.value if isinstance(f.value, (list, tuple)) else [f.value]
        return set(values).issubset(f.options)
    return True


def filter_field(template: Filter) -> QueryStateField:
    """
    Field for one editable filter, keyed by the filter id.

    The URL carries ``<value>|<active>`` and omits the parameter while the
    filter matches its template.
    """
    parse_value = _filter_value_parser(template)

    def hydrate(raw: str) -> Filter:
        value_part, separator, active_part = raw.rpartition(ACTIVE_SEPARATOR)
        if not separator:
            raise ValueError(f"missing '{ACTIVE_SEPARATOR}<active>' suffix in '{raw}'")
        return replace(template, value=parse_value(value_part), active=_parse_bool(active_part))

    def dehydrate(f: Filter) -> Optional[str]:
        if f is None or (f.value == template.value and f.active == template.active):
            return None
        return f"{_format_filter_value(f)}{ACTIVE_SEPARATOR}{format_number(bool(f.active))}"

    return QueryStateField(
        template.id,
        default=template,
        hydrator=hydrate,
        dehydrator=dehydrate,
        validator=_filter_value_allowed,
    )


# --- weights and economic parameters ---

def _within(bounds: Optional[Sequence[float]]) -> Optional[Callable[[Any], bool]]:
    if bounds is None:
        return None
    low, high = bounds
    return lambda v: low <= v <= high


def _numeric_field(key: str, default, bounds: Optional[Sequence[float]]) -> QueryStateField:
    def dehydrate(value) -> Optional[str]:
        if value is None or value == default:
            return None
        return format_number(value)

    return QueryStateField(
        key,
        default=default,
        hydrator=parse_number,
        dehydrator=dehydrate,
        validator=_within(bounds),
    )


def weight_field(weight: Mapping[str, Any]) -> QueryStateField:
    """Scoring weight multiplier, omitted from the URL while at its default."""
    return _numeric_field(weight['id'], weight.get('default'), weight.get('range'))


def lcoe_field(parameter: Mapping[str, Any], default=None) -> QueryStateField:
    """Economic parameter value, omitted from the URL while at its preset."""
    return _numeric_field(parameter['id'], default, parameter.get('range'))
