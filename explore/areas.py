"""
Area catalogue for the explore page.

Areas are countries or regions with a bounding box, the resources the API
supports for them and, once the maritime boundary datasets are loaded, the
EEZ features that make offshore wind available.
"""

import json
import logging
import os
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from shapely.geometry import box, shape

from core.exceptions import ConfigurationError
from .panel_data import OFFSHORE, RESOURCE_LIST

logger = logging.getLogger(__name__)

Area = Dict[str, Any]

EEZ_COUNTRY_PROPERTY = 'ISO_TER1'


def prepare_areas(raw_areas: Iterable[Mapping[str, Any]]) -> List[Area]:
    """
    Normalise raw area records and sort them by name.

    Countries are keyed by their 'gid'; string bounds ("w,s,e,n") are parsed.
    """
    areas = []
    for raw in raw_areas:
        area = dict(raw)
        if area.get('type') == 'country' and area.get('gid') is not None:
            area['id'] = area['gid']
        bounds = area.get('bounds')
        if isinstance(bounds, str):
            area['bounds'] = [float(x) for x in bounds.split(',')]
        area.setdefault('available_resources', [r['name'] for r in RESOURCE_LIST])
        areas.append(area)

    return sorted(areas, key=lambda a: a.get('name', '').upper())


def _read_json(path: str) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Data file not found: {path}", config_file=path)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error decoding {path}: {e}", config_file=path)


def load_areas(path: str) -> List[Area]:
    """Load and prepare the area catalogue from a JSON list."""
    areas = prepare_areas(_read_json(path))
    logger.info(f"Loaded {len(areas)} areas from {path}")
    return areas


def group_eez_by_country(features: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    """Group EEZ features by their territory ISO code."""
    grouped = defaultdict(list)
    for feature in features:
        country_id = (feature.get('properties') or {}).get(EEZ_COUNTRY_PROPERTY)
        if country_id:
            grouped[country_id].append(feature)
    return dict(grouped)


def load_eez(eez_file: str, regions_dir: Optional[str], areas: Sequence[Area]):
    """
    Load country and region EEZ features.

    Returns:
        Tuple of (country id -> features, region id -> features)
    """
    eez_by_country = group_eez_by_country(_read_json(eez_file).get('features', []))

    eez_by_region = {}
    for area in areas:
        if area.get('type') != 'region' or not regions_dir:
            continue
        path = os.path.join(regions_dir, f"{area['id']}.geojson")
        if os.path.exists(path):
            eez_by_region[area['id']] = _read_json(path).get('features', [])

    return eez_by_country, eez_by_region


def attach_eez(areas: Iterable[Area],
               eez_by_country: Mapping[str, List[Mapping[str, Any]]],
               eez_by_region: Optional[Mapping[str, List[Mapping[str, Any]]]] = None) -> List[Area]:
    """Return copies of areas with their 'eez' features set (None when absent)."""
    eez_by_region = eez_by_region or {}
    result = []
    for area in areas:
        area = dict(area)
        if area.get('type') == 'country':
            area['eez'] = eez_by_country.get(area['id'])
        elif area.get('type') == 'region':
            area['eez'] = eez_by_region.get(area['id'])
        result.append(area)
    return result


def find_area(areas: Iterable[Area], area_id: Any) -> Optional[Area]:
    if area_id is None:
        return None
    for area in areas:
        if str(area.get('id')) == str(area_id):
            return area
    return None


def available_resources(area: Optional[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """
    Resources selectable for an area.

    Every resource is available when no area is selected. Otherwise the
    resource must be listed for the area, and offshore wind additionally
    needs EEZ features.
    """
    resources = []
    for resource in RESOURCE_LIST:
        if area is None:
            resources.append(resource)
            continue
        if resource['name'] not in area.get('available_resources', []):
            continue
        if resource['name'] == OFFSHORE and area.get('eez') is None:
            continue
        resources.append(resource)
    return resources


def offshore_bounds(area: Mapping[str, Any]) -> List[float]:
    """Bounds of the area extended to cover its EEZ features."""
    geometries = [box(*area['bounds'])]
    for feature in area.get('eez') or []:
        geometry = feature.get('geometry')
        if geometry:
            geometries.append(shape(geometry))

    bounds = [g.bounds for g in geometries]
    return [
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    ]
