"""
Tests for the REZoning API client.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest
import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import NetworkError
from explore.api_client import RezoningApiClient
from explore.panel_data import OFFSHORE, SOLAR
from explore.zone_fetch import FetchRequest

ENDPOINT = 'https://api.example.org/v1'


def mock_response(status_code=200, json_data=None, url=ENDPOINT):
    response = MagicMock()
    response.status_code = status_code
    response.url = url
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return RezoningApiClient(ENDPOINT + '/', timeout=30, session=session)


def make_request(resource=SOLAR, filter_string='slope=0,10'):
    return FetchRequest(
        area={'id': 'KEN'},
        resource=resource,
        zone_type={'name': 'Grid 9', 'type': 'grid', 'size': 9},
        filter_string=filter_string,
        weights={'slope': 1},
        lcoe={'n': 25},
    )


class TestZones:

    def test_zones_url(self, client):
        assert client.zones_url(make_request()) == f'{ENDPOINT}/zone/KEN/solar?slope=0,10'
        assert client.zones_url(make_request(OFFSHORE)) == f'{ENDPOINT}/zone/KEN/offshore?slope=0,10&offshore=true'
        assert client.zones_url(make_request(filter_string='')) == f'{ENDPOINT}/zone/KEN/solar'

    def test_fetch_zones(self, client, session):
        features = [{'properties': {'id': 1}}]
        session.request.return_value = mock_response(json_data={'type': 'FeatureCollection', 'features': features})

        assert client.fetch_zones(make_request()) == features

        method, url = session.request.call_args[0]
        kwargs = session.request.call_args[1]
        assert method == 'POST'
        assert url == f'{ENDPOINT}/zone/KEN/solar?slope=0,10'
        assert kwargs['timeout'] == 30
        assert kwargs['json'] == {
            'zone_type': {'name': 'Grid 9', 'type': 'grid', 'size': 9},
            'weights': {'slope': 1},
            'lcoe': {'n': 25},
        }

    def test_fetch_zones_accepts_plain_list(self, client, session):
        session.request.return_value = mock_response(json_data=[{'id': 1}])
        assert client.fetch_zones(make_request()) == [{'id': 1}]

    def test_non_2xx_raises_network_error(self, client, session):
        session.request.return_value = mock_response(status_code=500)

        with pytest.raises(NetworkError) as exc_info:
            client.fetch_zones(make_request())

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == 'Unexpected error (500).'

    def test_transport_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError) as exc_info:
            client.fetch_zones(make_request())

        assert exc_info.value.status_code is None

    def test_invalid_json(self, client, session):
        session.request.return_value = mock_response(json_data=ValueError("bad"))
        with pytest.raises(NetworkError):
            client.fetch_zones(make_request())

    def test_unexpected_payload(self, client, session):
        session.request.return_value = mock_response(json_data={'type': 'FeatureCollection'})
        with pytest.raises(NetworkError):
            client.fetch_zones(make_request())


class TestFilterSchema:

    def test_fetch_filter_schema(self, client, session):
        schema = {'slope': {'type': 'range_filter', 'title': 'Slope'}}
        session.request.return_value = mock_response(json_data=schema)

        assert client.fetch_filter_schema() == schema
        assert session.request.call_args[0] == ('GET', f'{ENDPOINT}/filter/schema')

    def test_schema_must_be_object(self, client, session):
        session.request.return_value = mock_response(json_data=['slope'])
        with pytest.raises(NetworkError):
            client.fetch_filter_schema()


class TestExport:

    def test_request_export(self, client, session):
        session.request.return_value = mock_response(json_data={'id': 'job-1'})

        assert client.request_export('lcoe', 'KEN') == {'id': 'job-1'}
        assert session.request.call_args[0] == ('POST', f'{ENDPOINT}/export/lcoe/KEN')
        assert session.request.call_args[1]['params'] == {'capacity_factor': 0.8}

    def test_request_export_error_status(self, client, session):
        session.request.return_value = mock_response(status_code=404)

        with pytest.raises(NetworkError) as exc_info:
            client.request_export('score', 'KEN')

        assert exc_info.value.status_code == 404

    def test_request_export_without_id(self, client, session):
        session.request.return_value = mock_response(json_data={})
        with pytest.raises(NetworkError):
            client.request_export('score', 'KEN')
