"""server command: run the management HTTP API."""

import logging
import sys

import uvicorn

from pttops.errors import OpsError
from pttops.logging_setup import setup_server_logging
from pttops.server import create_app, load_accounts

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "0.0.0.0"
DEFAULT_PORT = 3000


def handle_server(args):
    """Handle the server command."""
    setup_server_logging(debug=args.debug)
    try:
        accounts = load_accounts()
    except OpsError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    app = create_app(accounts, static_dir=args.static_dir or None)
    logger.info(f"Server starting on {args.address}:{args.port}.")
    uvicorn.run(app, host=args.address, port=args.port, log_config=None)


def register_server_command(subparsers):
    """Register the server subcommand."""
    parser = subparsers.add_parser("server", help="Run the management HTTP server")
    parser.add_argument("-a", "--address", default=DEFAULT_ADDRESS, help=f"Address to bind (default: {DEFAULT_ADDRESS})")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help=f"Port to listen on (default: {DEFAULT_PORT})")
    parser.add_argument("--static-dir", default="", help="Directory of front-end files to serve at /")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.set_defaults(func=handle_server)
