"""
Layout for the explore page.

Built from the coordinator's current state so a restored URL renders with the
same selections it encodes.
"""

import dash_bootstrap_components as dbc
from dash import dcc, html

from .panel_data import BOOL, SLIDER, WEIGHTS_LIST, ZONE_TYPES


def _area_options(coordinator):
    return [{'label': area.get('name', area['id']), 'value': area['id']} for area in coordinator.areas]


def resource_options(coordinator):
    return [{'label': r['name'], 'value': r['name']} for r in coordinator.available_resources]


def _range_slider(component_id, filter_obj, step=None):
    low, high = filter_obj.range or (0, 1)
    value = filter_obj.range_value() or (low, high)
    return dcc.RangeSlider(
        id=component_id,
        min=low,
        max=high,
        step=step,
        value=list(value),
        allowCross=False,
        tooltip={'placement': 'bottom'},
    )


def create_selection_card(coordinator):
    """Area, resource and zone type selectors."""
    zone_type = coordinator.selected_zone_type
    return dbc.Card([
        dbc.CardHeader(html.H4("Selection")),
        dbc.CardBody([
            dbc.Label("Area"),
            dcc.Dropdown(
                id='area-select',
                options=_area_options(coordinator),
                value=coordinator.selected_area_id,
                placeholder="Select an area",
            ),
            dbc.Label("Resource", className="mt-2"),
            dcc.Dropdown(
                id='resource-select',
                options=resource_options(coordinator),
                value=coordinator.selected_resource,
                placeholder="Select a resource",
            ),
            dbc.Label("Zone Type", className="mt-2"),
            dcc.Dropdown(
                id='zone-type-select',
                options=[{'label': z['name'], 'value': z['name']} for z in ZONE_TYPES],
                value=zone_type['name'] if zone_type else None,
                placeholder="Select a zone type",
            ),
        ])
    ], className="mb-3")


def create_filter_controls(coordinator):
    rows = []
    for f in coordinator.filters:
        if f.kind == SLIDER and f.is_range:
            control = _range_slider({'type': 'filter-range', 'index': f.id}, f)
        elif f.kind == BOOL:
            control = html.Small("Exclusion mask", className="text-muted")
        else:
            continue
        rows.append(html.Div([
            dbc.Checklist(
                id={'type': 'filter-active', 'index': f.id},
                options=[{'label': f"{f.name} ({f.unit})" if f.unit else f.name, 'value': 'active'}],
                value=['active'] if f.active else [],
                switch=True,
            ),
            control,
        ], className="mb-2"))

    if not rows:
        rows = [html.P("No filters available.", className="text-muted")]
    return rows


def create_weights_controls(coordinator):
    weights = coordinator.weights
    return [
        html.Div([
            dbc.Label(weight['name']),
            dcc.Slider(
                id={'type': 'weight-slider', 'index': weight['id']},
                min=weight['range'][0],
                max=weight['range'][1],
                step=0.05,
                value=weights[weight['id']],
                marks=None,
                tooltip={'placement': 'bottom'},
            ),
        ], className="mb-2")
        for weight in WEIGHTS_LIST
    ]


def create_panel_card(coordinator):
    """Filters, weights and the generate action."""
    return dbc.Card([
        dbc.CardHeader(html.H4("Filters & Weights")),
        dbc.CardBody([
            dbc.Tabs([
                dbc.Tab(create_filter_controls(coordinator), label="Filters", className="pt-2"),
                dbc.Tab(create_weights_controls(coordinator), label="Weights", className="pt-2"),
            ]),
            dbc.Button("Generate Zones", id='generate-zones-button', color="primary", className="mt-3", n_clicks=0),
        ])
    ], className="mb-3")


def create_output_card(coordinator):
    """Output range filters, zone status and exports."""
    return dbc.Card([
        dbc.CardHeader(html.H4("Zones")),
        dbc.CardBody([
            dbc.Label("Zone Score Range"),
            _range_slider('zone-score-slider', coordinator.max_zone_score, step=0.01),
            dbc.Label("LCOE Range (USD/MWh)", className="mt-2"),
            _range_slider('lcoe-range-slider', coordinator.max_lcoe),
            html.Div(id='zone-status', className="mt-3"),
            html.Div(id='layer-urls', className="small text-muted"),
            dbc.ButtonGroup([
                dbc.Button("Export Zones CSV", id='export-zones-csv-button', color="secondary", n_clicks=0),
                dbc.Button("Raw LCOE", id='raw-export-lcoe-button', color="secondary", n_clicks=0),
                dbc.Button("Raw Score", id='raw-export-score-button', color="secondary", n_clicks=0),
            ], className="mt-3"),
            html.Div(id='export-alerts', className="mt-2"),
            dcc.Download(id='zones-csv-download'),
        ])
    ], className="mb-3")


def create_tour_section(coordinator):
    return html.Div([
        html.Span(f"Tour step {coordinator.tour_step}", id='tour-step-display', className="me-2"),
        dbc.Button("Next tip", id='tour-next-button', size="sm", color="link", n_clicks=0),
    ], className="mb-2")


def create_layout(coordinator, session_id=None):
    return dbc.Container([
        dcc.Store(id='explore-session-id', data=session_id),
        dcc.Location(id='explore-location', refresh=False),
        dcc.Interval(id='zone-status-interval', interval=1000, n_intervals=0),
        dcc.Store(id='zone-state-store'),
        html.H1("Explore"),
        create_tour_section(coordinator),
        dbc.Row([
            dbc.Col([
                create_selection_card(coordinator),
                create_panel_card(coordinator),
            ], md=5),
            dbc.Col([
                create_output_card(coordinator),
            ], md=7),
        ]),
    ], fluid=True)
