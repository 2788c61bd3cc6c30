"""
Tests for ExploreCoordinator.
"""

import os
import sys
from concurrent.futures import Executor, Future
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import NetworkError, PreconditionError
from explore.coordinator import ExploreCoordinator, derive_lcoe_range
from explore.panel_data import BOOL, OFFSHORE, SLIDER, SOLAR, WIND, Filter
from explore.zone_fetch import ZoneFetchMachine
from state_manager import StateManager


class ImmediateExecutor(Executor):
    """Runs jobs inline so completions apply before submit returns."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


def zone(lcoe, zone_id='z'):
    return {'properties': {'id': zone_id, 'summary': {'zone_score': 0.5, 'lcoe': lcoe}}}


EEZ_FEATURE = {
    'type': 'Feature',
    'properties': {'ISO_TER1': 'KEN'},
    'geometry': {'type': 'Polygon', 'coordinates': [[[41, -5], [45, -5], [45, 0], [41, 0], [41, -5]]]},
}


def make_areas():
    all_resources = [SOLAR, WIND, OFFSHORE]
    return [
        {'id': 'KEN', 'name': 'Kenya', 'type': 'country', 'bounds': [34, -5, 42, 5],
         'available_resources': all_resources, 'eez': [EEZ_FEATURE]},
        {'id': 'UGA', 'name': 'Uganda', 'type': 'country', 'bounds': [29, -1, 35, 4],
         'available_resources': all_resources, 'eez': None},
        {'id': 'kenya-coast', 'name': 'Coast', 'type': 'region', 'bounds': [38, -5, 42, 0],
         'available_resources': all_resources, 'eez': None},
    ]


def make_filters():
    return [
        Filter(id='f_slope', name='Slope', kind=SLIDER, is_range=True,
               value={'min': 0, 'max': 90}, range=(0, 90), unit='%'),
        Filter(id='f_distance', name='Distance', kind=SLIDER, is_range=True,
               value={'min': 0, 'max': 100}, range=(0, 100), unit='km'),
        Filter(id='f_protected', name='Protected Areas', kind=BOOL, value=True),
    ]


@pytest.fixture
def fetcher():
    return MagicMock(return_value=[zone(10), zone(25), zone(7)])


@pytest.fixture
def coordinator(fetcher):
    machine = ZoneFetchMachine(fetcher, executor=ImmediateExecutor())
    return ExploreCoordinator(
        areas=make_areas(),
        machine=machine,
        filters=make_filters(),
        areas_initialized=True,
        api_endpoint='https://api.example.org/v1',
    )


class TestDerivedLcoe:

    def test_derive_lcoe_range(self):
        assert derive_lcoe_range([zone(10), zone(25), zone(7)]) == {'min': 7, 'max': 25}

    def test_derive_lcoe_range_ignores_missing_values(self):
        zones = [zone(None), {'properties': {}}, zone(3)]
        assert derive_lcoe_range(zones) == {'min': 3, 'max': 3}

    def test_derive_lcoe_range_empty(self):
        assert derive_lcoe_range([]) is None

    def test_ready_zones_reshape_lcoe_filter(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)

        coordinator.update_filtered_layer()

        assert coordinator.machine.is_ready()
        lcoe = coordinator.max_lcoe
        assert lcoe.active is True
        assert lcoe.value == {'min': 7, 'max': 25}
        assert lcoe.range == (7, 25)
        assert 'maxLCOE=7,25' in coordinator.query_string

    def test_empty_result_deactivates_lcoe_filter(self, coordinator, fetcher):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        fetcher.return_value = []
        coordinator.update_filtered_layer()

        assert coordinator.max_lcoe.active is False
        assert 'maxLCOE' not in coordinator.query_string

    def test_failure_deactivates_lcoe_filter(self, coordinator, fetcher):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        fetcher.side_effect = NetworkError("Unexpected error (500).", status_code=500)
        coordinator.update_filtered_layer()

        assert coordinator.machine.is_failed()
        assert coordinator.max_lcoe.active is False
        assert coordinator.status()['status_code'] == 500


class TestResourceAvailability:

    def test_area_without_eez_excludes_offshore(self, coordinator):
        coordinator.set_selected_area_id('UGA')

        names = [r['name'] for r in coordinator.available_resources]
        assert OFFSHORE not in names
        assert WIND in names

    def test_offshore_selection_falls_back_when_unavailable(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(OFFSHORE)
        assert coordinator.selected_resource == OFFSHORE

        coordinator.set_selected_area_id('UGA')

        assert coordinator.selected_resource is None
        assert 'resourceId' not in coordinator.query_string

    def test_offshore_requested_in_url_for_area_without_eez(self, coordinator):
        coordinator.sync_query_string('areaId=UGA&resourceId=Off-Shore%20Wind')

        assert coordinator.selected_area_id == 'UGA'
        assert coordinator.selected_resource is None

    def test_offshore_in_url_for_area_with_eez(self, coordinator):
        coordinator.sync_query_string('areaId=KEN&resourceId=Off-Shore%20Wind')
        assert coordinator.selected_resource == OFFSHORE

    def test_area_change_invalidates_zones(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()
        assert coordinator.machine.is_ready()

        coordinator.set_selected_area_id('UGA')

        assert coordinator.machine.is_idle()
        assert coordinator.max_lcoe.active is False

    def test_every_resource_available_before_initialization(self):
        areas = [dict(a, eez=None) for a in make_areas()]
        coordinator = ExploreCoordinator(areas=areas, query_string='areaId=UGA&resourceId=Off-Shore%20Wind')

        assert coordinator.selected_resource == OFFSHORE

        coordinator.initialize_areas({})

        assert coordinator.selected_resource is None

    def test_initialize_areas_attaches_eez(self):
        areas = [{k: v for k, v in a.items() if k != 'eez'} for a in make_areas()]
        coordinator = ExploreCoordinator(areas=areas)

        coordinator.initialize_areas({'KEN': [EEZ_FEATURE]})
        coordinator.set_selected_area_id('KEN')

        assert coordinator.areas_initialized is True
        assert OFFSHORE in [r['name'] for r in coordinator.available_resources]

    def test_offshore_bounds_cover_eez(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(OFFSHORE)

        assert coordinator.selected_area['bounds'] == [34, -5, 45, 5]

    def test_unknown_area_in_url_is_ignored(self, coordinator):
        coordinator.sync_query_string('areaId=XXX')
        assert coordinator.selected_area_id is None
        assert 'areaId' in coordinator.store.errors


class TestQueryState:

    def test_initial_query_string(self):
        coordinator = ExploreCoordinator(
            areas=make_areas(),
            areas_initialized=True,
            query_string='maxZoneScore=0.2,0.9&maxLCOE=10,50&areaId=KEN&resourceId=Wind&zoneId=Grid%2025',
        )

        assert coordinator.selected_area_id == 'KEN'
        assert coordinator.selected_resource == WIND
        assert coordinator.selected_zone_type == {'name': 'Grid 25', 'type': 'grid', 'size': 25}
        assert coordinator.max_zone_score.value == {'min': 0.2, 'max': 0.9}
        assert coordinator.max_lcoe.active is True
        assert coordinator.max_lcoe.value == {'min': 10, 'max': 50}

    def test_query_string_round_trip(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.set_selected_zone_type('Grid 9')
        coordinator.set_weight('slope', 0.5)
        coordinator.set_filter(replace(coordinator.filters[0], value={'min': 5, 'max': 30}))

        restored = ExploreCoordinator(
            areas=make_areas(), filters=make_filters(), areas_initialized=True,
            query_string=coordinator.query_string,
        )

        assert restored.selected_area_id == 'KEN'
        assert restored.selected_resource == WIND
        assert restored.selected_zone_type['name'] == 'Grid 9'
        assert restored.weights['slope'] == 0.5
        assert restored.filters[0].value == {'min': 5, 'max': 30}
        assert restored.query_string == coordinator.query_string

    def test_invalid_zone_type_falls_back(self, coordinator):
        coordinator.sync_query_string('zoneId=Grid%207')
        assert coordinator.selected_zone_type is None

    def test_publish_called_on_changes(self):
        published = []
        coordinator = ExploreCoordinator(areas=make_areas(), areas_initialized=True, publish=published.append)

        coordinator.set_selected_area_id('KEN')

        assert published[-1] == 'areaId=KEN'

    def test_default_state_has_empty_query_string(self, coordinator):
        assert coordinator.query_string == ''


class TestLayerUrls:

    def test_filter_string_uses_unit_multipliers(self, coordinator):
        coordinator.set_selected_resource(WIND)
        coordinator.set_filter(replace(coordinator.filters[1], value={'min': 1, 'max': 2}))

        assert coordinator.update_filter_string() == 'f_distance=1000,2000'

    def test_urls(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.set_filter(replace(coordinator.filters[0], value={'min': 5, 'max': 30}))

        coordinator.update_filtered_layer(lcoe={'n': 25, 'i': 0.2})

        assert coordinator.filtered_layer_url == (
            'https://api.example.org/v1/filter/KEN/{z}/{x}/{y}.png?f_slope=5,30&color=255,0,160,100'
        )
        assert coordinator.output_layer_url == (
            'KEN/wind/{z}/{x}/{y}.png?f_slope=5,30&n=25&i=0.2&colormap=viridis'
        )

    def test_offshore_urls(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(OFFSHORE)

        filtered, output = coordinator.build_layer_urls('', {})

        assert filtered == 'https://api.example.org/v1/filter/KEN/{z}/{x}/{y}.png?&offshore=true&color=255,0,160,100'
        assert output == 'KEN/offshore/{z}/{x}/{y}.png?&offshore=true&colormap=viridis'

    def test_fetch_request_contents(self, coordinator, fetcher):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(SOLAR)
        coordinator.set_selected_zone_type('Boundaries')

        coordinator.update_filtered_layer(weights={'slope': 0.5}, lcoe={'n': 20})

        request = fetcher.call_args[0][0]
        assert request.area_id == 'KEN'
        assert request.resource == SOLAR
        assert request.zone_type == {'name': 'Boundaries', 'type': 'boundaries'}
        assert request.filter_string == ''
        assert dict(request.weights) == {'slope': 0.5}
        assert dict(request.lcoe) == {'n': 20}

    def test_generate_requires_area_and_resource(self, coordinator, fetcher):
        with pytest.raises(PreconditionError):
            coordinator.update_filtered_layer()

        coordinator.set_selected_area_id('KEN')
        with pytest.raises(PreconditionError):
            coordinator.update_filtered_layer()

        fetcher.assert_not_called()


class TestTour:

    def test_tour_step_defaults_to_zero(self):
        coordinator = ExploreCoordinator(areas=make_areas(), state_manager=StateManager())
        assert coordinator.tour_step == 0

    def test_tour_step_read_and_written(self):
        state_manager = StateManager()
        state_manager.set_value('site-tour', 2)

        coordinator = ExploreCoordinator(areas=make_areas(), state_manager=state_manager)
        assert coordinator.tour_step == 2

        coordinator.set_tour_step(3)
        assert state_manager.get_value('site-tour') == 3

    def test_invalid_stored_tour_step(self):
        state_manager = StateManager()
        state_manager.set_value('site-tour', 'later')

        coordinator = ExploreCoordinator(areas=make_areas(), state_manager=state_manager)
        assert coordinator.tour_step == 0


class TestExports:

    def test_raw_export_restricted_to_countries(self, coordinator):
        client = MagicMock()
        coordinator.api_client = client
        coordinator.set_selected_area_id('kenya-coast')

        with pytest.raises(PreconditionError) as exc_info:
            coordinator.request_raw_export('lcoe')

        assert exc_info.value.message == 'Raw data exports are restricted to countries at the moment.'
        client.request_export.assert_not_called()

    def test_raw_export(self, coordinator):
        client = MagicMock()
        client.request_export.return_value = {'id': 'job-1'}
        coordinator.api_client = client
        coordinator.set_selected_area_id('KEN')

        download = coordinator.request_raw_export('score')

        client.request_export.assert_called_once_with('score', 'KEN', 0.8)
        assert download['id'] == 'job-1'
        assert download['pretty_operation'] == 'Score'

    def test_raw_export_network_error_propagates(self, coordinator):
        client = MagicMock()
        client.request_export.side_effect = NetworkError("Unexpected error (502).", status_code=502)
        coordinator.api_client = client
        coordinator.set_selected_area_id('KEN')

        with pytest.raises(NetworkError):
            coordinator.request_raw_export('lcoe')

    def test_zones_csv_requires_ready_zones(self, coordinator, tmp_path):
        with pytest.raises(PreconditionError):
            coordinator.export_zones_csv(str(tmp_path))

    def test_zones_csv(self, coordinator, tmp_path):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        path = coordinator.export_zones_csv(str(tmp_path))

        assert os.path.exists(path)
        assert os.path.basename(path).startswith('rezoning-KEN-zones-')
