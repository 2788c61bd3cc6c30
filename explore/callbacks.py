"""
Dash callbacks for the explore page.

Handlers take the coordinator as their first argument so they can be driven
directly; register_callbacks() binds them to the app and resolves the
coordinator of the page session stored in explore-session-id.
"""

import logging
from dataclasses import replace

import dash
import dash_bootstrap_components as dbc
from dash import ALL, Input, Output, State, dcc, html, no_update

from core.exceptions import NetworkError, PreconditionError
from .layout import resource_options
from .sessions import get_explore_coordinator

logger = logging.getLogger(__name__)

_registered_apps = set()


def _slider_range(value):
    return {'min': value[0], 'max': value[1]}


def _search(coordinator):
    query_string = coordinator.query_string
    return f"?{query_string}" if query_string else ''


def selection_view(coordinator):
    """Values of the selection controls for the coordinator's current state."""
    zone_type = coordinator.selected_zone_type
    zone_score = coordinator.max_zone_score.range_value()
    lcoe = coordinator.max_lcoe
    return (
        _search(coordinator),
        coordinator.selected_area_id,
        resource_options(coordinator),
        coordinator.selected_resource,
        zone_type['name'] if zone_type else None,
        list(zone_score) if zone_score else no_update,
        list(lcoe.range_value()) if lcoe.active and lcoe.range_value() else no_update,
    )


def apply_explore_inputs(coordinator, trigger, search, area_id, resource, zone_type,
                         zone_score, lcoe_range):
    """
    Route one control change (or URL navigation) into the coordinator.

    Returns:
        Tuple of (location search, area, resource options, resource,
        zone type, zone score slider value, LCOE slider value)
    """
    if trigger == 'area-select':
        coordinator.set_selected_area_id(area_id)
    elif trigger == 'resource-select':
        coordinator.set_selected_resource(resource)
    elif trigger == 'zone-type-select':
        coordinator.set_selected_zone_type(zone_type)
    elif trigger == 'zone-score-slider' and zone_score:
        coordinator.set_max_zone_score(replace(coordinator.max_zone_score, value=_slider_range(zone_score)))
    elif trigger == 'lcoe-range-slider' and lcoe_range:
        current = coordinator.max_lcoe
        if current.active:
            coordinator.set_max_lcoe(replace(current, value=_slider_range(lcoe_range)))
    else:
        coordinator.sync_query_string(search)

    return selection_view(coordinator)


def apply_panel_inputs(coordinator, range_ids, range_values, active_ids, active_values,
                       weight_ids, weight_values):
    """Commit the panel's filter and weight controls, then generate zones."""
    ranges = {i['index']: v for i, v in zip(range_ids, range_values)}
    actives = {i['index']: bool(v) for i, v in zip(active_ids, active_values)}

    for f in coordinator.filters:
        changes = {}
        if f.id in ranges and ranges[f.id]:
            changes['value'] = _slider_range(ranges[f.id])
        if f.id in actives:
            changes['active'] = actives[f.id]
        if changes:
            coordinator.set_filter(replace(f, **changes))

    for weight_id, value in zip((i['index'] for i in weight_ids), weight_values):
        if value is not None:
            coordinator.set_weight(weight_id, value)

    try:
        coordinator.update_filtered_layer()
    except PreconditionError as e:
        return dbc.Alert(e.message, color="warning"), _search(coordinator)

    return dbc.Alert("Generating zones...", color="info"), _search(coordinator)


def zone_status_view(coordinator, last_version):
    """
    Render the zone request status.

    The LCOE slider is only rewritten when the machine moved to a new state,
    so polling does not fight the user dragging it.
    """
    version = coordinator.machine.version
    status = coordinator.status()

    if status['state'] == 'loading':
        children = dbc.Alert([dbc.Spinner(size="sm"), " Loading zones..."], color="info")
    elif status['state'] == 'ready':
        children = dbc.Alert(f"{status['zone_count']} zones generated.", color="success")
    elif status['state'] == 'failed':
        children = dbc.Alert(f"Zone generation failed: {status['error']}", color="danger")
    else:
        children = html.P("Select an area and resource, then generate zones.", className="text-muted")

    urls = []
    if coordinator.output_layer_url:
        urls.append(html.Div(f"Output layer: {coordinator.output_layer_url}"))
    if coordinator.filtered_layer_url:
        urls.append(html.Div(f"Filtered layer: {coordinator.filtered_layer_url}"))

    if version == last_version:
        return children, urls, no_update, no_update, no_update, no_update, no_update, version

    lcoe = coordinator.max_lcoe
    low, high = lcoe.range
    value = list(lcoe.range_value() or (low, high))
    return children, urls, low, high, value, not lcoe.active, _search(coordinator), version


def run_raw_export(coordinator, operation):
    try:
        download = coordinator.request_raw_export(operation)
    except PreconditionError as e:
        return dbc.Alert(e.message, color="warning")
    except NetworkError as e:
        logger.error(f"Raw data export failed: {e}")
        return dbc.Alert(f"Export failed: {e.message}", color="danger")

    return dbc.Alert(
        f"{download['pretty_operation']} raw data export for {download['area_name']} is being processed. "
        f"Job {download['id']}.",
        color="info"
    )


def export_zones_download(coordinator, output_dir='exports'):
    try:
        path = coordinator.export_zones_csv(output_dir)
    except PreconditionError as e:
        return no_update, dbc.Alert(e.message, color="warning")
    return dcc.send_file(path), dbc.Alert("Zones exported.", color="success")


def advance_tour(coordinator):
    coordinator.set_tour_step(coordinator.tour_step + 1)
    return f"Tour step {coordinator.tour_step}"


def register_callbacks(app):
    """Register the explore page callbacks once per app instance."""
    if id(app) in _registered_apps:
        logger.debug("Explore callbacks already registered for this app instance")
        return
    _registered_apps.add(id(app))

    @app.callback(
        [Output('explore-location', 'search'),
         Output('area-select', 'value'),
         Output('resource-select', 'options'),
         Output('resource-select', 'value'),
         Output('zone-type-select', 'value'),
         Output('zone-score-slider', 'value'),
         Output('lcoe-range-slider', 'value')],
        [Input('explore-location', 'search'),
         Input('area-select', 'value'),
         Input('resource-select', 'value'),
         Input('zone-type-select', 'value'),
         Input('zone-score-slider', 'value'),
         Input('lcoe-range-slider', 'value')],
        State('explore-session-id', 'data')
    )
    def update_explore_selection(search, area_id, resource, zone_type, zone_score, lcoe_range, session_id):
        return apply_explore_inputs(
            get_explore_coordinator(session_id), dash.ctx.triggered_id,
            search, area_id, resource, zone_type, zone_score, lcoe_range
        )

    @app.callback(
        [Output('zone-status', 'children', allow_duplicate=True),
         Output('explore-location', 'search', allow_duplicate=True)],
        Input('generate-zones-button', 'n_clicks'),
        [State({'type': 'filter-range', 'index': ALL}, 'id'),
         State({'type': 'filter-range', 'index': ALL}, 'value'),
         State({'type': 'filter-active', 'index': ALL}, 'id'),
         State({'type': 'filter-active', 'index': ALL}, 'value'),
         State({'type': 'weight-slider', 'index': ALL}, 'id'),
         State({'type': 'weight-slider', 'index': ALL}, 'value'),
         State('explore-session-id', 'data')],
        prevent_initial_call=True
    )
    def generate_zones(n_clicks, range_ids, range_values, active_ids, active_values,
                       weight_ids, weight_values, session_id):
        return apply_panel_inputs(
            get_explore_coordinator(session_id), range_ids, range_values,
            active_ids, active_values, weight_ids, weight_values
        )

    @app.callback(
        [Output('zone-status', 'children'),
         Output('layer-urls', 'children'),
         Output('lcoe-range-slider', 'min'),
         Output('lcoe-range-slider', 'max'),
         Output('lcoe-range-slider', 'value', allow_duplicate=True),
         Output('lcoe-range-slider', 'disabled'),
         Output('explore-location', 'search', allow_duplicate=True),
         Output('zone-state-store', 'data')],
        Input('zone-status-interval', 'n_intervals'),
        [State('zone-state-store', 'data'),
         State('explore-session-id', 'data')],
        prevent_initial_call=True
    )
    def poll_zone_status(n_intervals, last_version, session_id):
        return zone_status_view(get_explore_coordinator(session_id), last_version)

    @app.callback(
        Output('export-alerts', 'children', allow_duplicate=True),
        [Input('raw-export-lcoe-button', 'n_clicks'),
         Input('raw-export-score-button', 'n_clicks')],
        State('explore-session-id', 'data'),
        prevent_initial_call=True
    )
    def request_raw_export(lcoe_clicks, score_clicks, session_id):
        operation = 'lcoe' if dash.ctx.triggered_id == 'raw-export-lcoe-button' else 'score'
        return run_raw_export(get_explore_coordinator(session_id), operation)

    @app.callback(
        [Output('zones-csv-download', 'data'),
         Output('export-alerts', 'children', allow_duplicate=True)],
        Input('export-zones-csv-button', 'n_clicks'),
        State('explore-session-id', 'data'),
        prevent_initial_call=True
    )
    def download_zones_csv(n_clicks, session_id):
        return export_zones_download(get_explore_coordinator(session_id))

    @app.callback(
        Output('tour-step-display', 'children'),
        Input('tour-next-button', 'n_clicks'),
        State('explore-session-id', 'data'),
        prevent_initial_call=True
    )
    def next_tour_step(n_clicks, session_id):
        return advance_tour(get_explore_coordinator(session_id))

    logger.info("Registered explore callbacks")
