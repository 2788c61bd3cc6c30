"""
Explore page coordinator.

ExploreCoordinator ties the URL-backed query state, the filter encoder and the
zone fetch machine together:

* selected area, resource and zone type, the output range filters and every
  filter, weight and LCOE value live in one QueryStateStore;
* applying the panel encodes the filters, builds the tile URLs handed to the
  map and submits a zone request;
* a ready zone result reshapes the LCOE range filter;
* an area change invalidates the zones and recomputes which resources the
  area supports.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from core.exceptions import NetworkError, PreconditionError
from . import export
from .api_client import RezoningApiClient
from .areas import Area, attach_eez, available_resources, find_area, load_areas, load_eez, offshore_bounds
from .filter_encoder import encode_filters, format_number
from .panel_data import (
    API_RESOURCE_NAMES,
    DEFAULT_RANGE,
    LCOE_LIST,
    OFFSHORE,
    RESOURCE_LIST,
    UNIT_MULTIPLIERS,
    WEIGHTS_LIST,
    ZONE_TYPES,
    Filter,
    default_lcoe,
    filters_from_schema,
    get_zone_type,
)
from .qs_schema import (
    AREA_KEY,
    LCOE_RANGE_KEY,
    RESOURCE_KEY,
    ZONE_SCORE_KEY,
    ZONE_TYPE_KEY,
    filter_field,
    id_field,
    lcoe_field,
    lcoe_range_field,
    weight_field,
    zone_score_field,
)
from .query_state import QueryStateStore
from .zone_fetch import FetchRequest, Failed, Ready, ZoneFetchMachine

logger = logging.getLogger(__name__)

TOUR_KEY = 'site-tour'


def derive_lcoe_range(zones: Iterable[Mapping[str, Any]]) -> Optional[Dict[str, float]]:
    """``{'min', 'max'}`` of the zones' LCOE, or None when no zone has one."""
    values = []
    for zone in zones:
        summary = (zone.get('properties') or {}).get('summary') or {}
        if summary.get('lcoe') is not None:
            values.append(summary['lcoe'])
    if not values:
        return None
    return {'min': min(values), 'max': max(values)}


class ExploreCoordinator:
    """
    Owner of the explore state for one session.

    Args:
        areas: Prepared area catalogue
        machine: Zone fetch machine shared by every zone view
        api_client: Client used for raw-data exports
        state_manager: Persistent key-value store for the tour step
        filters: Filter templates shown in the panel
        areas_initialized: Whether EEZ data is already attached to areas
        query_string: Initial URL query string
        publish: Called with the new query string after every UI change
    """

    def __init__(
        self,
        areas: Sequence[Area],
        machine: Optional[ZoneFetchMachine] = None,
        api_client: Optional[RezoningApiClient] = None,
        state_manager=None,
        filters: Iterable[Filter] = (),
        areas_initialized: bool = False,
        query_string: str = '',
        publish: Optional[Callable[[str], None]] = None,
        api_endpoint: str = '',
        filter_color: str = '255,0,160,100',
        output_colormap: str = 'viridis',
        unit_multipliers: Optional[Mapping[str, float]] = None,
        default_lcoe_range: Sequence[float] = DEFAULT_RANGE,
        export_capacity_factor: float = 0.8,
        tour_key: str = TOUR_KEY,
    ):
        self.areas: List[Area] = list(areas)
        self.areas_initialized = areas_initialized
        self.machine = machine or ZoneFetchMachine()
        self.api_client = api_client
        self.state_manager = state_manager
        self.api_endpoint = api_endpoint.rstrip('/')
        self.filter_color = filter_color
        self.output_colormap = output_colormap
        self.unit_multipliers = dict(UNIT_MULTIPLIERS if unit_multipliers is None else unit_multipliers)
        self.export_capacity_factor = export_capacity_factor
        self.tour_key = tour_key

        self.available_resources: List[Dict[str, str]] = list(RESOURCE_LIST)
        self.filter_string = ''
        self.filtered_layer_url: Optional[str] = None
        self.output_layer_url: Optional[str] = None
        self._filter_templates: List[Filter] = []

        self.store = QueryStateStore(publish=publish)
        self.store.register(zone_score_field())
        self.store.register(lcoe_range_field(default_lcoe_range))
        self.store.register(id_field(AREA_KEY, validator=lambda v: find_area(self.areas, v) is not None))
        self.store.register(id_field(RESOURCE_KEY, validator=self._is_resource_allowed))
        self.store.register(id_field(ZONE_TYPE_KEY, validator=[z['name'] for z in ZONE_TYPES]))

        lcoe_defaults = default_lcoe()
        for weight in WEIGHTS_LIST:
            self.store.register(weight_field(weight))
        for parameter in LCOE_LIST:
            self.store.register(lcoe_field(parameter, lcoe_defaults.get(parameter['id'])))

        self.set_filters(filters)

        self.tour_step = self._read_tour_step()

        self.machine.subscribe(self._on_zones_changed)

        if query_string:
            self.sync_query_string(query_string)
        else:
            self._update_available_resources(self.selected_area)

    # --- query string ---

    @property
    def query_string(self) -> str:
        return self.store.query_string

    def sync_query_string(self, query_string: Optional[str]) -> List[str]:
        """
        Apply an externally changed URL query string (load or navigation).

        Returns:
            Keys whose value changed
        """
        changed = self.store.sync(query_string)
        if AREA_KEY in changed:
            self._on_area_changed()
        elif RESOURCE_KEY in changed:
            self._update_available_resources(self.selected_area)
        return changed

    # --- area ---

    @property
    def selected_area_id(self) -> Optional[str]:
        return self.store.get(AREA_KEY)

    @property
    def selected_area(self) -> Optional[Area]:
        """Selected area; for offshore wind its bounds cover the EEZ too."""
        area = find_area(self.areas, self.selected_area_id)
        if area is not None and self.selected_resource == OFFSHORE and area.get('bounds'):
            area = dict(area, bounds=offshore_bounds(area))
        return area

    def set_selected_area_id(self, area_id: Optional[str]) -> None:
        if area_id == self.selected_area_id:
            return
        self.store.set(AREA_KEY, area_id)
        self._on_area_changed()
        # The LCOE range of the previous area's zones no longer applies
        self._deactivate_max_lcoe()

    def initialize_areas(self, eez_by_country: Mapping[str, list],
                         eez_by_region: Optional[Mapping[str, list]] = None) -> None:
        """Attach EEZ features to areas and enable resource availability checks."""
        self.areas = attach_eez(self.areas, eez_by_country, eez_by_region)
        self.areas_initialized = True
        self._update_available_resources(self.selected_area)

    def _on_area_changed(self) -> None:
        # Zones of another area are meaningless
        self.machine.invalidate()
        self._update_available_resources(self.selected_area)

    # --- resource ---

    @property
    def selected_resource(self) -> Optional[str]:
        return self.store.get(RESOURCE_KEY)

    def set_selected_resource(self, resource: Optional[str]) -> None:
        self.store.set(RESOURCE_KEY, resource)
        self._update_available_resources(self.selected_area)

    def _resources_for(self, area: Optional[Area]) -> List[Dict[str, str]]:
        if not self.areas_initialized:
            return list(RESOURCE_LIST)
        return available_resources(area)

    def _is_resource_allowed(self, resource: str) -> bool:
        area = find_area(self.areas, self.store.get(AREA_KEY))
        return resource in [r['name'] for r in self._resources_for(area)]

    def _update_available_resources(self, area: Optional[Area]) -> None:
        if not self.areas_initialized:
            # EEZ data decides offshore availability
            return
        self.available_resources = available_resources(area)
        resource = self.selected_resource
        if self.store.revalidate(RESOURCE_KEY):
            logger.info(f"Resource {resource} is not available for area {self.selected_area_id}")

    # --- zone type ---

    @property
    def selected_zone_type(self) -> Optional[Dict[str, Any]]:
        return get_zone_type(self.store.get(ZONE_TYPE_KEY))

    def set_selected_zone_type(self, name: Optional[str]) -> None:
        self.store.set(ZONE_TYPE_KEY, name)

    # --- output filters ---

    @property
    def max_zone_score(self) -> Filter:
        return self.store.get(ZONE_SCORE_KEY)

    def set_max_zone_score(self, value: Filter) -> None:
        self.store.set(ZONE_SCORE_KEY, value)

    @property
    def max_lcoe(self) -> Filter:
        return self.store.get(LCOE_RANGE_KEY)

    def set_max_lcoe(self, value: Filter) -> None:
        self.store.set(LCOE_RANGE_KEY, value)

    # --- filters, weights, economic parameters ---

    def set_filters(self, templates: Iterable[Filter]) -> None:
        """Replace the editable filters; values already in the URL are kept."""
        for template in self._filter_templates:
            self.store.unregister(template.id)
        self._filter_templates = []
        for template in templates:
            if self.store.has(template.id):
                logger.warning(f"Filter {template.id} clashes with an existing query key, skipping")
                continue
            self.store.register(filter_field(template))
            self._filter_templates.append(template)

    def load_filters(self, ranges: Optional[Mapping[str, Sequence[float]]] = None) -> List[Filter]:
        """Fetch the filter schema from the API and use it as the editable filters."""
        if self.api_client is None:
            raise PreconditionError("No API client configured", operation='load_filters')
        templates = filters_from_schema(self.api_client.fetch_filter_schema(), ranges)
        query_string = self.query_string
        self.set_filters(templates)
        self.store.sync(query_string)
        return templates

    @property
    def filters(self) -> List[Filter]:
        return [self.store.get(template.id) for template in self._filter_templates]

    def set_filter(self, value: Filter) -> None:
        self.store.set(value.id, value)

    @property
    def weights(self) -> Dict[str, float]:
        return {w['id']: self.store.get(w['id']) for w in WEIGHTS_LIST}

    def set_weight(self, weight_id: str, value: float) -> None:
        self.store.set(weight_id, value)

    @property
    def lcoe(self) -> Dict[str, float]:
        """Economic parameters that have a value."""
        values = {p['id']: self.store.get(p['id']) for p in LCOE_LIST}
        return {k: v for k, v in values.items() if v is not None}

    def set_lcoe(self, parameter_id: str, value: float) -> None:
        self.store.set(parameter_id, value)

    # --- encoding and URLs ---

    def update_filter_string(self, filters: Optional[Iterable[Filter]] = None) -> str:
        """Encode filters (the current ones by default) for the API."""
        filters = self.filters if filters is None else filters
        self.filter_string = encode_filters(filters, self.selected_resource, self.unit_multipliers)
        return self.filter_string

    def build_layer_urls(self, filter_string: str, lcoe: Mapping[str, Any]):
        """
        Tile URL templates for the filtered overlay and the colorized output.

        Returns:
            Tuple of (filtered layer URL, output layer URL)
        """
        area = self._require_area('build_layer_urls')
        resource = self._require_resource('build_layer_urls')

        area_path = f"{area['id']}/"
        resource_path = f"{API_RESOURCE_NAMES[resource]}/"
        offshore = '&offshore=true' if resource == OFFSHORE else ''

        filtered_url = (
            f"{self.api_endpoint}/filter/{area_path}{{z}}/{{x}}/{{y}}.png"
            f"?{filter_string}{offshore}&color={self.filter_color}"
        )

        query = [filter_string] if filter_string else []
        query.extend(f"{key}={format_number(value)}" for key, value in lcoe.items())
        output_url = (
            f"{area_path}{resource_path}{{z}}/{{x}}/{{y}}.png"
            f"?{'&'.join(query)}{offshore}&colormap={self.output_colormap}"
        )
        return filtered_url, output_url

    def update_filtered_layer(self, filters: Optional[Iterable[Filter]] = None,
                              weights: Optional[Mapping[str, float]] = None,
                              lcoe: Optional[Mapping[str, float]] = None) -> Future:
        """
        Apply the panel: encode filters, refresh the tile URLs and request zones.

        Returns:
            Future of the zone request
        """
        weights = self.weights if weights is None else weights
        lcoe = self.lcoe if lcoe is None else lcoe

        filter_string = self.update_filter_string(filters)
        self.filtered_layer_url, self.output_layer_url = self.build_layer_urls(filter_string, lcoe)

        return self.generate_zones(filter_string, weights, lcoe)

    def generate_zones(self, filter_string: str, weights: Mapping[str, float],
                       lcoe: Mapping[str, float]) -> Future:
        area = self._require_area('generate_zones')
        resource = self._require_resource('generate_zones')

        request = FetchRequest(
            area=area,
            resource=resource,
            zone_type=self.selected_zone_type,
            filter_string=filter_string,
            weights=weights,
            lcoe=lcoe,
        )
        logger.info(f"Generating zones for {area.get('name', area['id'])}")
        return self.machine.submit(request)

    def _require_area(self, operation: str) -> Area:
        area = self.selected_area
        if area is None:
            raise PreconditionError("Select an area first", operation=operation)
        return area

    def _require_resource(self, operation: str) -> str:
        resource = self.selected_resource
        if resource is None:
            raise PreconditionError("Select a resource first", operation=operation)
        return resource

    # --- derived state ---

    def _on_zones_changed(self, state) -> None:
        # Idle and Loading keep the range so a restored URL survives start-up
        if not isinstance(state, (Ready, Failed)):
            return
        value = derive_lcoe_range(state.zones) if isinstance(state, Ready) else None
        if value is None:
            self._deactivate_max_lcoe()
            return
        self.set_max_lcoe(replace(
            self.max_lcoe,
            active=True,
            value=value,
            range=(value['min'], value['max'])
        ))

    def _deactivate_max_lcoe(self) -> None:
        current = self.max_lcoe
        if current.active:
            self.set_max_lcoe(replace(current, active=False))

    def status(self) -> Dict[str, Any]:
        """Summary of the zone request for status displays."""
        machine = self.machine
        zones = machine.get_data() or ()
        error = machine.get_error()
        return {
            'state': machine.state.name,
            'zone_count': len(zones),
            'error': error.message if error else None,
            'status_code': error.status_code if error else None,
            'lcoe_range': self.max_lcoe.value if self.max_lcoe.active else None,
        }

    # --- tour ---

    def _read_tour_step(self) -> int:
        if self.state_manager is None:
            return 0
        stored = self.state_manager.get_value(self.tour_key)
        if stored is None:
            return 0
        try:
            return int(stored)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid stored tour step {stored!r}")
            return 0

    def set_tour_step(self, step: int) -> None:
        self.tour_step = step
        if self.state_manager is not None:
            self.state_manager.set_value(self.tour_key, step)

    # --- exports ---

    def request_raw_export(self, operation: str) -> Dict[str, Any]:
        """
        Ask the API for a raw-data export of the selected country.

        Raises:
            PreconditionError: Before any request when the selection does not allow it
            NetworkError: When the API rejects the request
        """
        area = self.selected_area
        export.validate_raw_export(area, operation)
        if self.api_client is None:
            raise PreconditionError("No API client configured", operation=operation)

        job = self.api_client.request_export(operation, area['id'], self.export_capacity_factor)
        logger.info(f"{export.pretty_operation(operation)} raw data export for {area.get('name')} is being processed")
        return export.build_download(job, area, operation)

    def export_zones_csv(self, output_dir: str = '.') -> str:
        if not self.machine.is_ready():
            raise PreconditionError("Generate zones before exporting them", operation='export_zones_csv')
        return export.export_zones_csv(self.selected_area, self.machine.get_data(), output_dir)


def create_coordinator_factory(config, state_manager=None) -> Callable[[], ExploreCoordinator]:
    """
    Load the shared explore data once and return a builder of per-session coordinators.

    Areas with their EEZ features, the filter schema, the API client and the
    fetch thread pool are shared; each coordinator gets its own query state
    and zone fetch machine.
    """
    client = RezoningApiClient(config.api.api_endpoint, timeout=config.api.request_timeout)
    executor = ThreadPoolExecutor(max_workers=config.api.fetch_workers, thread_name_prefix='zone-fetch')

    areas = load_areas(config.data.areas_file)
    eez_by_country, eez_by_region = load_eez(config.data.eez_file, config.data.eez_regions_dir, areas)
    areas = attach_eez(areas, eez_by_country, eez_by_region)

    try:
        templates = filters_from_schema(client.fetch_filter_schema())
    except NetworkError as e:
        logger.warning(f"Filter schema unavailable, continuing without filters: {e}")
        templates = []

    logger.info(f"Loaded {len(areas)} areas and {len(templates)} filters for explore sessions")

    def factory() -> ExploreCoordinator:
        return ExploreCoordinator(
            areas=areas,
            machine=ZoneFetchMachine(client.fetch_zones, executor=executor),
            api_client=client,
            state_manager=state_manager,
            filters=templates,
            areas_initialized=True,
            api_endpoint=config.api.api_endpoint,
            filter_color=config.api.filter_color,
            output_colormap=config.api.output_colormap,
            unit_multipliers=config.explore.unit_multipliers,
            default_lcoe_range=config.explore.default_lcoe_range,
            export_capacity_factor=config.api.export_capacity_factor,
            tour_key=config.state.tour_key,
        )

    return factory
