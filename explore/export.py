"""
Zone exports for the explore page.

Tabular zone summaries written with pandas, and the checks and labels around
raw-data export jobs requested from the API.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

import pandas as pd

from core.exceptions import PreconditionError

logger = logging.getLogger(__name__)

RAW_EXPORT_OPERATIONS = ('lcoe', 'score')

ZONE_COLUMNS = [
    'id',
    'zone_score',
    'lcoe_usd_mwh',
    'zone_output_gwh',
    'zone_output_density_mwh_km2',
]


def get_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime('%Y%m%d-%H%M%S')


def generate_export_filename(area_id: Any, now: Optional[datetime] = None) -> str:
    """File name for a zone CSV export of an area."""
    return f"rezoning-{area_id}-zones-{get_timestamp(now)}.csv"


def zones_to_dataframe(zones: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """One row per zone with its summary metrics; 'name' only when any zone has one."""
    rows = []
    for zone in zones:
        properties = zone.get('properties') or {}
        summary = properties.get('summary') or {}
        row = {
            'id': properties.get('id', zone.get('id')),
            'zone_score': summary.get('zone_score'),
            'lcoe_usd_mwh': summary.get('lcoe'),
            'zone_output_gwh': summary.get('zone_output'),
            'zone_output_density_mwh_km2': summary.get('zone_output_density'),
        }
        if properties.get('name'):
            row['name'] = properties['name']
        rows.append(row)

    df = pd.DataFrame(rows)
    columns = ZONE_COLUMNS + (['name'] if 'name' in df.columns else [])
    return df.reindex(columns=columns)


def export_zones_csv(area: Mapping[str, Any], zones: Iterable[Mapping[str, Any]],
                     output_dir: str = '.', now: Optional[datetime] = None) -> str:
    """
    Write the zone summary CSV for an area.

    Returns:
        Path of the written file
    """
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, generate_export_filename(area['id'], now))
    zones_to_dataframe(zones).to_csv(path, index=False)
    logger.info(f"Exported zones for {area.get('name', area['id'])} to {path}")
    return path


def validate_raw_export(area: Optional[Mapping[str, Any]], operation: str) -> None:
    """
    Check a raw-data export request before any network call.

    Raises:
        PreconditionError: When no country is selected or the operation is unknown
    """
    if operation not in RAW_EXPORT_OPERATIONS:
        raise PreconditionError(
            f"Unknown raw data export '{operation}', expected one of {list(RAW_EXPORT_OPERATIONS)}",
            operation=operation
        )
    if area is None or area.get('type') != 'country':
        raise PreconditionError(
            'Raw data exports are restricted to countries at the moment.',
            operation=operation
        )


def pretty_operation(operation: str) -> str:
    """Label for an export operation ('LCOE', 'Score')."""
    return operation.upper() if operation == 'lcoe' else operation.title()


def build_download(export_job: Mapping[str, Any], area: Mapping[str, Any], operation: str,
                   started_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Record describing a raw-data export that is being processed."""
    return {
        'id': export_job['id'],
        'area_id': area['id'],
        'area_name': area.get('name'),
        'operation': operation,
        'pretty_operation': pretty_operation(operation),
        'started_at': (started_at or datetime.now()).isoformat(),
    }
