"""
Challenge management package for CageMatch.
"""

from .manager import ChallengeManager
from .state_machine import ChallengeStateMachine, ChallengeAction

__all__ = [
    "ChallengeManager",
    "ChallengeStateMachine",
    "ChallengeAction"
]
