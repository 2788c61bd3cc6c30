"""
Tests for explore page callback handlers and registration.
"""

import os
import sys
from concurrent.futures import Executor, Future
from unittest.mock import MagicMock

import dash
import pytest
from dash import no_update

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import NetworkError
from explore.callbacks import (
    advance_tour,
    apply_explore_inputs,
    apply_panel_inputs,
    export_zones_download,
    register_callbacks,
    run_raw_export,
    zone_status_view,
)
from explore.coordinator import ExploreCoordinator
from explore.layout import create_layout
from explore.panel_data import BOOL, OFFSHORE, SLIDER, SOLAR, WIND, Filter
from explore.zone_fetch import ZoneFetchMachine
from state_manager import StateManager


class ImmediateExecutor(Executor):

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


AREAS = [
    {'id': 'KEN', 'name': 'Kenya', 'type': 'country', 'bounds': [34, -5, 42, 5],
     'available_resources': [SOLAR, WIND, OFFSHORE], 'eez': None},
    {'id': 'coast', 'name': 'Coast', 'type': 'region', 'bounds': [38, -5, 42, 0],
     'available_resources': [SOLAR, WIND], 'eez': None},
]


@pytest.fixture
def coordinator():
    fetcher = MagicMock(return_value=[
        {'properties': {'id': 1, 'summary': {'zone_score': 0.8, 'lcoe': 30}}},
        {'properties': {'id': 2, 'summary': {'zone_score': 0.6, 'lcoe': 60}}},
    ])
    return ExploreCoordinator(
        areas=AREAS,
        machine=ZoneFetchMachine(fetcher, executor=ImmediateExecutor()),
        state_manager=StateManager(),
        filters=[
            Filter(id='f_slope', name='Slope', kind=SLIDER, is_range=True,
                   value={'min': 0, 'max': 90}, range=(0, 90), unit='%'),
            Filter(id='f_protected', name='Protected', kind=BOOL, value=True),
        ],
        areas_initialized=True,
        api_endpoint='https://api.example.org/v1',
    )


class TestSelection:

    def test_location_sync(self, coordinator):
        result = apply_explore_inputs(
            coordinator, 'explore-location', '?areaId=KEN&resourceId=Wind', None, None, None, None, None
        )
        search, area_id, options, resource, zone_type, zone_score, lcoe = result

        assert search == '?areaId=KEN&resourceId=Wind'
        assert area_id == 'KEN'
        assert resource == WIND
        assert [o['value'] for o in options] == [SOLAR, WIND]
        assert zone_type is None
        assert zone_score == [0, 1]
        assert lcoe is no_update

    def test_area_change(self, coordinator):
        search, area_id, options, *_ = apply_explore_inputs(
            coordinator, 'area-select', '', 'coast', None, None, None, None
        )

        assert search == '?areaId=coast'
        assert area_id == 'coast'
        assert OFFSHORE not in [o['value'] for o in options]

    def test_zone_score_change(self, coordinator):
        result = apply_explore_inputs(
            coordinator, 'zone-score-slider', '', None, None, None, [0.2, 0.7], None
        )

        assert result[0] == '?maxZoneScore=0.2,0.7'
        assert result[5] == [0.2, 0.7]

    def test_inactive_lcoe_slider_ignored(self, coordinator):
        result = apply_explore_inputs(
            coordinator, 'lcoe-range-slider', '', None, None, None, None, [5, 10]
        )
        assert result[0] == ''
        assert coordinator.max_lcoe.active is False


class TestPanel:

    def test_generate_without_selection_warns(self, coordinator):
        alert, search = apply_panel_inputs(coordinator, [], [], [], [], [], [])
        assert alert.color == 'warning'
        assert alert.children == 'Select an area first'

    def test_generate_applies_controls(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(SOLAR)

        alert, search = apply_panel_inputs(
            coordinator,
            [{'type': 'filter-range', 'index': 'f_slope'}], [[10, 20]],
            [{'type': 'filter-active', 'index': 'f_slope'}, {'type': 'filter-active', 'index': 'f_protected'}],
            [['active'], []],
            [{'type': 'weight-slider', 'index': 'slope'}], [0.25],
        )

        assert alert.color == 'info'
        assert coordinator.filter_string == 'f_slope=10,20&f_protected=true'
        assert coordinator.weights['slope'] == 0.25
        assert coordinator.machine.is_ready()
        assert 'slope=0.25' in search
        assert 'maxLCOE=30,60' in search


class TestStatus:

    def test_idle_status(self, coordinator):
        children, urls, low, high, value, disabled, search, state_id = zone_status_view(coordinator, None)

        assert 'generate zones' in children.children
        assert urls == []
        assert disabled is True
        assert (low, high) == (0, 1000000)

    def test_unchanged_state_leaves_slider_alone(self, coordinator):
        *_, state_id = zone_status_view(coordinator, None)
        result = zone_status_view(coordinator, state_id)

        assert result[2] is no_update
        assert result[4] is no_update

    def test_new_transition_rewrites_slider(self, coordinator):
        *_, version = zone_status_view(coordinator, None)
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        result = zone_status_view(coordinator, version)

        assert result[7] == coordinator.machine.version
        assert result[7] > version
        assert result[4] == [30, 60]

    def test_ready_status(self, coordinator):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        children, urls, low, high, value, disabled, search, state_id = zone_status_view(coordinator, None)

        assert children.color == 'success'
        assert children.children == '2 zones generated.'
        assert len(urls) == 2
        assert (low, high) == (30, 60)
        assert value == [30, 60]
        assert disabled is False


class TestExports:

    def test_raw_export_region_warning(self, coordinator):
        coordinator.api_client = MagicMock()
        coordinator.set_selected_area_id('coast')

        alert = run_raw_export(coordinator, 'lcoe')

        assert alert.color == 'warning'
        assert alert.children == 'Raw data exports are restricted to countries at the moment.'

    def test_raw_export_network_error(self, coordinator):
        coordinator.api_client = MagicMock()
        coordinator.api_client.request_export.side_effect = NetworkError("Unexpected error (500).", status_code=500)
        coordinator.set_selected_area_id('KEN')

        alert = run_raw_export(coordinator, 'score')

        assert alert.color == 'danger'
        assert 'Unexpected error (500).' in alert.children

    def test_raw_export_success(self, coordinator):
        coordinator.api_client = MagicMock()
        coordinator.api_client.request_export.return_value = {'id': 'job-7'}
        coordinator.set_selected_area_id('KEN')

        alert = run_raw_export(coordinator, 'lcoe')

        assert alert.color == 'info'
        assert 'LCOE raw data export for Kenya' in alert.children

    def test_zones_download_requires_zones(self, coordinator, tmp_path):
        data, alert = export_zones_download(coordinator, str(tmp_path))
        assert data is no_update
        assert alert.color == 'warning'

    def test_zones_download(self, coordinator, tmp_path):
        coordinator.set_selected_area_id('KEN')
        coordinator.set_selected_resource(WIND)
        coordinator.update_filtered_layer()

        data, alert = export_zones_download(coordinator, str(tmp_path))

        assert data['filename'].startswith('rezoning-KEN-zones-')
        assert alert.color == 'success'


class TestTour:

    def test_advance_tour(self, coordinator):
        assert advance_tour(coordinator) == 'Tour step 1'
        assert coordinator.state_manager.get_value('site-tour') == 1


class TestRegistration:

    def test_layout_builds(self, coordinator):
        layout = create_layout(coordinator)
        assert layout is not None

    def test_register_callbacks_once(self):
        app = dash.Dash(__name__, suppress_callback_exceptions=True)

        register_callbacks(app)
        count = len(app.callback_map)
        register_callbacks(app)

        assert count >= 6
        assert len(app.callback_map) == count
