"""Web dashboard for tpanel.

Provides a local web interface for installing and controlling apps and for
watching host telemetry, using FastAPI and HTMX.
"""

from .app import create_app

__all__ = ["create_app"]
