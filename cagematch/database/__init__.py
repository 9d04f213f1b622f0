"""
Database package for CageMatch.
"""

from .connection import DatabaseManager, create_indexes
from .models import Challenge, ChallengeStatus, User, Role
from .operations import ChallengeOps, UserOps

__all__ = [
    "DatabaseManager",
    "create_indexes",
    "Challenge",
    "ChallengeStatus",
    "User",
    "Role",
    "ChallengeOps",
    "UserOps"
]
