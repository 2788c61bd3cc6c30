"""
HTTP client for the REZoning API.

Covers the calls the explore page makes directly: zone generation, the filter
schema and raw-data export requests. Tile URLs are built by the coordinator
and fetched by the map, not here.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from core.exceptions import NetworkError
from .panel_data import API_RESOURCE_NAMES, OFFSHORE
from .zone_fetch import FetchRequest

logger = logging.getLogger(__name__)


class RezoningApiClient:
    """Thin wrapper over a requests session bound to the API endpoint."""

    def __init__(self, api_endpoint: str, timeout: int = 300,
                 session: Optional[requests.Session] = None):
        self.api_endpoint = api_endpoint.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {e}", url=url) from e

        if response.status_code >= 400:
            raise NetworkError(
                f"Unexpected error ({response.status_code}).",
                status_code=response.status_code,
                url=url
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                f"Invalid JSON in API response: {e}",
                status_code=response.status_code,
                url=response.url
            ) from e

    def zones_url(self, request: FetchRequest) -> str:
        resource_path = API_RESOURCE_NAMES.get(request.resource, request.resource)
        query = [request.filter_string] if request.filter_string else []
        if request.resource == OFFSHORE:
            query.append('offshore=true')
        url = f"{self.api_endpoint}/zone/{request.area_id}/{resource_path}"
        return f"{url}?{'&'.join(query)}" if query else url

    def fetch_zones(self, request: FetchRequest) -> List[Dict[str, Any]]:
        """
        Generate zones for a request.

        Returns:
            Zone features in API order

        Raises:
            NetworkError: On transport failure, non-2xx status or bad payload
        """
        url = self.zones_url(request)
        payload = {
            'zone_type': dict(request.zone_type) if request.zone_type else None,
            'weights': dict(request.weights),
            'lcoe': dict(request.lcoe),
        }
        logger.info(f"Requesting zones for area {request.area_id} ({request.resource})")
        data = self._json(self._request('POST', url, json=payload))

        if isinstance(data, Mapping):
            features = data.get('features')
        else:
            features = data
        if not isinstance(features, list):
            raise NetworkError("Zone response is not a feature list", url=url)
        return features

    def fetch_filter_schema(self) -> Dict[str, Dict[str, Any]]:
        """Filter id -> descriptor as published by the API."""
        url = f"{self.api_endpoint}/filter/schema"
        data = self._json(self._request('GET', url))
        if not isinstance(data, Mapping):
            raise NetworkError("Filter schema response is not an object", url=url)
        return dict(data)

    def request_export(self, operation: str, area_id: str,
                       capacity_factor: float = 0.8) -> Dict[str, Any]:
        """
        Ask the API to prepare a raw-data export.

        Returns:
            The API response, which carries the export job 'id'
        """
        url = f"{self.api_endpoint}/export/{operation}/{area_id}"
        response = self._request('POST', url, params={'capacity_factor': capacity_factor})
        data = self._json(response)
        if not isinstance(data, Mapping) or 'id' not in data:
            raise NetworkError("Export response carries no job id", url=url)
        return dict(data)
