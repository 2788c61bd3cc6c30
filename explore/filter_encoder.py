"""
Backend query-string encoding for explore filters.

Turns the typed filter state edited in the panel into the query fragment the
REZoning API understands for tiles and zones. Encoding is pure and
order-stable: the same filters, resource and units always produce the same
string.
"""

import logging
import numbers
from collections.abc import Mapping
from typing import Iterable, Optional

from core.exceptions import UnsupportedFilterKind
from .panel_data import BOOL, DROPDOWN, MULTI, SLIDER, UNIT_MULTIPLIERS, Filter, check_included

logger = logging.getLogger(__name__)

# Boolean filters act as UI inclusion masks
MASK_KINDS = (BOOL,)


def format_number(value) -> str:
    """Render a number the way it appears in a browser URL (1000, 0.5, not 1000.0)."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_multiplier(unit: Optional[str], unit_table: Optional[Mapping] = None) -> float:
    """Multiplier converting a UI unit into the API unit; 1 when unknown."""
    table = UNIT_MULTIPLIERS if unit_table is None else unit_table
    return table.get(unit) or 1


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_omitted(filter_obj: Filter, resource: Optional[str]) -> bool:
    if filter_obj.kind in MASK_KINDS:
        # An active mask means "include these areas" and stays in the UI.
        # Inactive masks fall through and are sent.
        return filter_obj.active

    if not filter_obj.active or not check_included(filter_obj, resource):
        return True

    if filter_obj.is_range:
        if filter_obj.is_full_range():
            return True
        if not filter_obj.is_valid_range():
            logger.debug(f"Filter {filter_obj.id} has an unset range value {filter_obj.value}, omitting")
            return True
    elif filter_obj.kind == SLIDER and filter_obj.range_value() is None and not _is_number(filter_obj.value):
        logger.debug(f"Filter {filter_obj.id} has no numeric value {filter_obj.value!r}, omitting")
        return True

    return False


def _encode_value(filter_obj: Filter, unit_table: Optional[Mapping]) -> Optional[str]:
    filter_id = filter_obj.id

    if filter_obj.kind == SLIDER:
        multiplier = get_multiplier(filter_obj.unit, unit_table)
        bounds = filter_obj.range_value()
        if bounds is None:
            return f"{filter_id}={format_number(filter_obj.value * multiplier)}"
        low, high = bounds
        return f"{filter_id}={format_number(low * multiplier)},{format_number(high * multiplier)}"

    if filter_obj.kind == BOOL:
        return f"{filter_id}={format_number(bool(filter_obj.value))}"

    if filter_obj.kind == MULTI:
        selected = _as_list(filter_obj.value)
        if set(selected) == set(filter_obj.options or []):
            return None
        return f"{filter_id}={','.join(str(v) for v in selected)}"

    if filter_obj.kind == DROPDOWN:
        return f"{filter_id}={','.join(str(v) for v in _as_list(filter_obj.value))}"

    raise UnsupportedFilterKind(
        f"Filter {filter_id} type not supported by api",
        filter_id=filter_id,
        kind=filter_obj.kind
    )


def encode_filter(filter_obj: Filter, resource: Optional[str],
                  unit_table: Optional[Mapping] = None) -> Optional[str]:
    """
    Encode one filter as a ``key=value`` fragment.

    Args:
        filter_obj: Filter to encode
        resource: Selected resource display name
        unit_table: Unit -> multiplier table (defaults to UNIT_MULTIPLIERS)

    Returns:
        The fragment, or None when the filter places no restriction
        or cannot be encoded.
    """
    if _is_omitted(filter_obj, resource):
        return None

    try:
        return _encode_value(filter_obj, unit_table)
    except UnsupportedFilterKind as e:
        logger.error(f"{e}, discarding")
        return None


def encode_filters(filters: Iterable[Filter], resource: Optional[str],
                   unit_table: Optional[Mapping] = None) -> str:
    """
    Build the backend filter query string for a list of filters.

    Args:
        filters: Filters in display order
        resource: Selected resource display name
        unit_table: Unit -> multiplier table (defaults to UNIT_MULTIPLIERS)

    Returns:
        Fragments of every restricting filter joined with '&'
    """
    fragments = (encode_filter(f, resource, unit_table) for f in filters)
    return '&'.join(fragment for fragment in fragments if fragment)
