"""API Package.

FastAPI server for the ledger reconciliation engine.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
