"""
Configuration management for REZoning Explorer.

This module provides a split configuration system that separates concerns
into focused configuration classes, loaded from and saved to a TOML file.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import toml

from .exceptions import ConfigurationError


@dataclass
class ApiConfig:
    """Configuration for the REZoning API and the tile URLs handed to the map."""

    api_endpoint: str = 'http://localhost:8000/v1'
    request_timeout: int = 300
    filter_color: str = '255,0,160,100'
    output_colormap: str = 'viridis'
    export_capacity_factor: float = 0.8
    fetch_workers: int = 2

    def validate(self) -> List[str]:
        """Validate the API configuration and return any errors."""
        errors = []

        if not self.api_endpoint:
            errors.append("api_endpoint cannot be empty")

        if self.request_timeout <= 0:
            errors.append("request_timeout must be positive")

        if len(self.filter_color.split(',')) != 4:
            errors.append("filter_color must be four comma-separated channels")

        if self.fetch_workers <= 0:
            errors.append("fetch_workers must be positive")

        return errors


@dataclass
class DataConfig:
    """Configuration for the area catalogue and maritime boundary datasets."""

    areas_file: str = 'data/areas.json'
    eez_file: str = 'data/zones/eez.geojson'
    eez_regions_dir: str = 'data/eez-regions'

    def validate(self) -> List[str]:
        """Validate the data configuration and return any errors."""
        errors = []

        if not self.areas_file:
            errors.append("areas_file cannot be empty")

        return errors


@dataclass
class ExploreConfig:
    """Configuration for filter encoding and output filter defaults."""

    # UI works in human units, the API expects meters
    unit_multipliers: Dict[str, float] = field(default_factory=lambda: {'km': 1000})
    default_lcoe_range: Tuple[float, float] = (0, 1000000)
    # Page sessions kept in memory before the least recently used is dropped
    max_sessions: int = 100

    def validate(self) -> List[str]:
        """Validate the explore configuration and return any errors."""
        errors = []

        for unit, multiplier in self.unit_multipliers.items():
            if multiplier <= 0:
                errors.append(f"unit multiplier for '{unit}' must be positive")

        if self.default_lcoe_range[0] >= self.default_lcoe_range[1]:
            errors.append("default_lcoe_range min must be less than max")

        if self.max_sessions <= 0:
            errors.append("max_sessions must be positive")

        return errors


@dataclass
class StateConfig:
    """Configuration for the persistent key-value store."""

    backend: str = 'memory'  # 'memory', 'redis', 'database'
    ttl_default: int = 0  # 0 keeps values until deleted
    key_prefix: str = 'rezoning'
    tour_key: str = 'site-tour'
    redis_url: str = 'redis://localhost:6379/0'
    database_url: str = 'sqlite:///explore_state.db'

    def validate(self) -> List[str]:
        """Validate the state configuration and return any errors."""
        errors = []

        valid_backends = ['memory', 'redis', 'database']
        if self.backend not in valid_backends:
            errors.append(f"backend must be one of {valid_backends}")

        if self.ttl_default < 0:
            errors.append("ttl_default cannot be negative")

        return errors


@dataclass
class Config:
    """Main configuration class that combines all configuration sections."""

    config_file_path: str = "config.toml"

    api: ApiConfig = field(default_factory=ApiConfig)
    data: DataConfig = field(default_factory=DataConfig)
    explore: ExploreConfig = field(default_factory=ExploreConfig)
    state: StateConfig = field(default_factory=StateConfig)

    def __post_init__(self):
        """Load configuration when an instance is created."""
        self.load_config()

    def save_config(self) -> None:
        """Save current configuration to TOML file."""
        config_data = {
            'api': {
                'api_endpoint': self.api.api_endpoint,
                'request_timeout': self.api.request_timeout,
                'filter_color': self.api.filter_color,
                'output_colormap': self.api.output_colormap,
                'export_capacity_factor': self.api.export_capacity_factor,
                'fetch_workers': self.api.fetch_workers,
            },
            'data': {
                'areas_file': self.data.areas_file,
                'eez_file': self.data.eez_file,
                'eez_regions_dir': self.data.eez_regions_dir,
            },
            'explore': {
                'unit_multipliers': dict(self.explore.unit_multipliers),
                'default_lcoe_min': self.explore.default_lcoe_range[0],
                'default_lcoe_max': self.explore.default_lcoe_range[1],
                'max_sessions': self.explore.max_sessions,
            },
            'state': {
                'backend': self.state.backend,
                'ttl_default': self.state.ttl_default,
                'key_prefix': self.state.key_prefix,
                'tour_key': self.state.tour_key,
                'redis_url': self.state.redis_url,
                'database_url': self.state.database_url,
            }
        }

        try:
            with open(self.config_file_path, 'w') as f:
                toml.dump(config_data, f)
            logging.info(f"Configuration saved to {self.config_file_path}")
        except OSError as e:
            error_msg = f"Error saving configuration: {e}"
            logging.error(error_msg)
            raise ConfigurationError(error_msg, config_file=self.config_file_path)

    def load_config(self) -> None:
        """Load configuration from TOML file."""
        try:
            with open(self.config_file_path) as f:
                config_data = toml.load(f)
        except FileNotFoundError:
            logging.info(f"{self.config_file_path} not found. Creating with default values.")
            self.save_config()
            return
        except toml.TomlDecodeError as e:
            error_msg = f"Error decoding {self.config_file_path}: {e}"
            logging.error(error_msg)
            raise ConfigurationError(error_msg, config_file=self.config_file_path)

        if 'api' in config_data:
            api_config = config_data['api']
            self.api.api_endpoint = api_config.get('api_endpoint', self.api.api_endpoint)
            self.api.request_timeout = api_config.get('request_timeout', self.api.request_timeout)
            self.api.filter_color = api_config.get('filter_color', self.api.filter_color)
            self.api.output_colormap = api_config.get('output_colormap', self.api.output_colormap)
            self.api.export_capacity_factor = api_config.get('export_capacity_factor', self.api.export_capacity_factor)
            self.api.fetch_workers = api_config.get('fetch_workers', self.api.fetch_workers)

        if 'data' in config_data:
            data_config = config_data['data']
            self.data.areas_file = data_config.get('areas_file', self.data.areas_file)
            self.data.eez_file = data_config.get('eez_file', self.data.eez_file)
            self.data.eez_regions_dir = data_config.get('eez_regions_dir', self.data.eez_regions_dir)

        if 'explore' in config_data:
            explore_config = config_data['explore']
            self.explore.unit_multipliers = explore_config.get('unit_multipliers', self.explore.unit_multipliers)
            lcoe_min = explore_config.get('default_lcoe_min', self.explore.default_lcoe_range[0])
            lcoe_max = explore_config.get('default_lcoe_max', self.explore.default_lcoe_range[1])
            self.explore.default_lcoe_range = (lcoe_min, lcoe_max)
            self.explore.max_sessions = explore_config.get('max_sessions', self.explore.max_sessions)

        if 'state' in config_data:
            state_config = config_data['state']
            self.state.backend = state_config.get('backend', self.state.backend)
            self.state.ttl_default = state_config.get('ttl_default', self.state.ttl_default)
            self.state.key_prefix = state_config.get('key_prefix', self.state.key_prefix)
            self.state.tour_key = state_config.get('tour_key', self.state.tour_key)
            self.state.redis_url = state_config.get('redis_url', self.state.redis_url)
            self.state.database_url = state_config.get('database_url', self.state.database_url)

        logging.info(f"Configuration loaded from {self.config_file_path}")

    def validate(self) -> List[str]:
        """Validate all configuration sections and return any errors."""
        errors = []
        errors.extend(self.api.validate())
        errors.extend(self.data.validate())
        errors.extend(self.explore.validate())
        errors.extend(self.state.validate())
        return errors
