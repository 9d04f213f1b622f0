"""
HTTP API package for CageMatch.
"""

from .app import create_app, build_services

__all__ = [
    "create_app",
    "build_services"
]
