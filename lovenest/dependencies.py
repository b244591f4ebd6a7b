"""
Dependency wiring for the FastAPI app.

The datastore and settings are built once by ``create_app`` and kept on
``app.state``; endpoints receive them through these providers.
"""

from __future__ import annotations

from fastapi import Request

from lovenest.config import Settings
from lovenest.datastore import Datastore


def get_datastore(request: Request) -> Datastore:
    return request.app.state.datastore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
