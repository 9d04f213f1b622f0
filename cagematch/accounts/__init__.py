"""
Accounts package for CageMatch.
"""

from .manager import AccountManager
from .security import TokenService, TokenClaims, hash_password, verify_password

__all__ = [
    "AccountManager",
    "TokenService",
    "TokenClaims",
    "hash_password",
    "verify_password"
]
