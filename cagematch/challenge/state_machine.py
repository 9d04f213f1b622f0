"""
Challenge state machine for CageMatch.
"""

from enum import Enum
from typing import Dict, Set, FrozenSet
import structlog

from ..database.models import ChallengeStatus

logger = structlog.get_logger(__name__)


class ChallengeAction(str, Enum):
    """Actions a participant can take on a challenge."""
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"
    UPDATE_DETAILS = "update_details"
    ADD_MESSAGE = "add_message"


# Lead-in for status errors, followed by the current status
REJECTION_MESSAGES: Dict[ChallengeAction, str] = {
    ChallengeAction.ACCEPT: "Challenge cannot be accepted",
    ChallengeAction.DECLINE: "Challenge cannot be declined",
    ChallengeAction.CANCEL: "Challenge cannot be cancelled",
    ChallengeAction.COMPLETE: "Challenge cannot be completed",
    ChallengeAction.UPDATE_DETAILS: "Challenge details cannot be updated",
    ChallengeAction.ADD_MESSAGE: "Messages cannot be sent on this challenge",
}


class ChallengeStateMachine:
    """State machine for managing challenge states."""

    # Define valid state transitions
    VALID_TRANSITIONS: Dict[ChallengeStatus, Set[ChallengeStatus]] = {
        ChallengeStatus.PENDING: {
            ChallengeStatus.ACCEPTED,
            ChallengeStatus.DECLINED,
            ChallengeStatus.CANCELLED
        },
        ChallengeStatus.ACCEPTED: {
            ChallengeStatus.CANCELLED,
            ChallengeStatus.COMPLETED
        },
        ChallengeStatus.DECLINED: set(),   # Terminal state
        ChallengeStatus.CANCELLED: set(),  # Terminal state
        ChallengeStatus.COMPLETED: set()   # Terminal state
    }

    # Which states each action may be taken from
    ALLOWED_FROM: Dict[ChallengeAction, FrozenSet[ChallengeStatus]] = {
        ChallengeAction.ACCEPT: frozenset({ChallengeStatus.PENDING}),
        ChallengeAction.DECLINE: frozenset({ChallengeStatus.PENDING}),
        ChallengeAction.CANCEL: frozenset({ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED}),
        ChallengeAction.COMPLETE: frozenset({ChallengeStatus.ACCEPTED}),
        ChallengeAction.UPDATE_DETAILS: frozenset({ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED}),
        ChallengeAction.ADD_MESSAGE: frozenset({ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED}),
    }

    # Where each action leads; actions missing here keep the current state
    TARGETS: Dict[ChallengeAction, ChallengeStatus] = {
        ChallengeAction.ACCEPT: ChallengeStatus.ACCEPTED,
        ChallengeAction.DECLINE: ChallengeStatus.DECLINED,
        ChallengeAction.CANCEL: ChallengeStatus.CANCELLED,
        ChallengeAction.COMPLETE: ChallengeStatus.COMPLETED,
    }

    def __init__(self, initial_state: ChallengeStatus = ChallengeStatus.PENDING):
        self.current_state = ChallengeStatus(initial_state)

    def can_transition_to(self, new_state: ChallengeStatus) -> bool:
        """Check if transition to new state is valid."""
        return ChallengeStatus(new_state) in self.VALID_TRANSITIONS.get(self.current_state, set())

    def transition_to(self, new_state: ChallengeStatus) -> bool:
        """Transition to a new state."""
        if not self.can_transition_to(new_state):
            logger.warning(
                "Invalid state transition attempted",
                current_state=self.current_state.value,
                new_state=ChallengeStatus(new_state).value
            )
            return False

        old_state = self.current_state
        self.current_state = ChallengeStatus(new_state)

        logger.info(
            "Challenge state transitioned",
            old_state=old_state.value,
            new_state=self.current_state.value
        )

        return True

    def can_apply(self, action: ChallengeAction) -> bool:
        """Check if an action is permitted from the current state."""
        return self.current_state in self.ALLOWED_FROM[action]

    def apply(self, action: ChallengeAction) -> bool:
        """Apply an action, moving to its target state if it has one."""
        if not self.can_apply(action):
            logger.warning(
                "Action not permitted in current state",
                action=action.value,
                current_state=self.current_state.value
            )
            return False

        target = self.TARGETS.get(action)
        if target is None:
            return True
        return self.transition_to(target)

    def is_terminal_state(self) -> bool:
        """Check if current state is terminal."""
        return len(self.VALID_TRANSITIONS.get(self.current_state, set())) == 0

    def is_active(self) -> bool:
        """Check if challenge can still be negotiated."""
        return self.current_state in {ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED}

    def get_current_state(self) -> ChallengeStatus:
        """Get current state."""
        return self.current_state
