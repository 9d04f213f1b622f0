"""
HTTP routes for CageMatch.
"""

from . import challenges, fighters, users

__all__ = [
    "challenges",
    "fighters",
    "users"
]
