"""Management HTTP server."""

from pttops.server.accounts import Account, load_accounts
from pttops.server.app import StackDetails, create_app

__all__ = [
    "Account",
    "StackDetails",
    "create_app",
    "load_accounts",
]
