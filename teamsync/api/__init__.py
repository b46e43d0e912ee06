"""HTTP surface of the data-store core (FastAPI)."""

from teamsync.api.routes import router
from teamsync.api.server import create_app

__all__ = ["router", "create_app"]
