"""Expose the application factory at package level.

Callers can ``from nexora import create_app`` without traversing the package
structure. The session client lives in :mod:`nexora.client` and is importable
without a Flask application.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
