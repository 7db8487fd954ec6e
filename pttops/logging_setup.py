"""Logging setup for the CLI and the management server."""

import logging
import sys

from pttops.redact import SecretRedactingFilter


def _reset_root(level):
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    return root


def setup_cli_logging():
    """Configure root logger with plain message format for CLI commands.

    Produces output identical to print(), which keeps `get --no-newline`
    and friends script-friendly.
    """
    root = _reset_root(logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)


def setup_server_logging(debug=False):
    """Configure root logger with timestamped records for the HTTP server."""
    root = _reset_root(logging.DEBUG if debug else logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.INFO)
