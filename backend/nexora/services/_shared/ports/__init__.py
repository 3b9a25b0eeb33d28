"""
nexora.services._shared.ports
=============================

*Ports* (hexagonal interfaces) the service layer depends on.

Modules
-------
- :mod:`token_store`:
    Defines :class:`~.TokenStore`, :class:`~.TokenPair` and
    :class:`~.RotationResult`, plus the lock-based :class:`~.InMemoryTokenStore`.

Concrete adapters for SQL and Redis live under ``nexora.infra``.
"""

from __future__ import annotations

from .token_store import InMemoryTokenStore, RotationResult, TokenPair, TokenStore

__all__ = [
    "InMemoryTokenStore",
    "RotationResult",
    "TokenPair",
    "TokenStore",
]
