"""Installable entry package for the DramaBrowse catalog facade."""

from __future__ import annotations

from app.main import app, build_services, create_app, get_services

__version__ = "1.0.0"

__all__ = ["app", "build_services", "create_app", "get_services", "__version__"]
