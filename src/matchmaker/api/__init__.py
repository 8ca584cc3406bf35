"""
API HTTP.

Rutas bajo /api/v1/matchmaker más /health.
"""

from matchmaker.api.app import create_app, SERVICE_KEY, API_PREFIX

__all__ = [
    "create_app",
    "SERVICE_KEY",
    "API_PREFIX",
]
