"""
Shared API Dependencies
========================

FastAPI dependencies resolving per-application collaborators from
``app.state`` so tests can swap them without touching module globals.
"""

from fastapi import Request

from designdesk.config import Settings, get_settings
from designdesk.core.clock import Clock, utc_now


def get_clock(request: Request) -> Clock:
    """Time source for the request; wall-clock UTC unless the app overrides it."""
    return getattr(request.app.state, "clock", None) or utc_now


def get_app_settings(request: Request) -> Settings:
    """Settings the application was built with."""
    return getattr(request.app.state, "settings", None) or get_settings()
