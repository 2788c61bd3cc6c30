import argparse
import logging
import threading
import time
import webbrowser

import dash
import dash_bootstrap_components as dbc

from config_manager import get_config
from core.logging_config import setup_logging
from explore.callbacks import register_callbacks
from explore.layout import create_layout
from explore.sessions import generate_session_id, get_explore_coordinator

logger = logging.getLogger(__name__)

app = dash.Dash(__name__, external_stylesheets=[dbc.themes.SLATE], suppress_callback_exceptions=True)
app.title = "REZoning Explorer"


def serve_layout():
    """Build the page for a new session; every page load gets its own explore state"""
    session_id = generate_session_id()
    return create_layout(get_explore_coordinator(session_id), session_id)


app.layout = serve_layout
register_callbacks(app)


def open_browser(url, delay=1.5):
    """Open browser after a delay"""
    def _open():
        time.sleep(delay)
        try:
            webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser automatically: {e}")

    threading.Thread(target=_open, daemon=True).start()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='REZoning Explorer - Renewable Energy Zone Explorer')
    parser.add_argument('--no-browser', action='store_true',
                       help='Do not automatically open browser')
    parser.add_argument('--port', type=int, default=8050, help='Port to serve on')
    parser.add_argument('--log-level', default='INFO', help='Logging level')
    args = parser.parse_args()

    setup_logging(level=args.log_level)

    config = get_config()
    for error in config.validate():
        logger.warning(f"Configuration problem: {error}")

    url = f"http://127.0.0.1:{args.port}"

    if not args.no_browser:
        open_browser(url)

    app.run(debug=True, port=args.port, use_reloader=False)
