"""
Challenge manager for CageMatch.

Runs the challenge workflow: every operation loads the challenge, checks who
is acting and whether the current status allows the action, mutates the
model, then saves it conditionally on the version it was loaded at. All
checks happen before the save, so a failed operation persists nothing.
"""

from typing import Optional, Dict, Any, List, Tuple
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
import structlog

from ..database import ChallengeOps, UserOps
from ..database.models import (
    Challenge,
    ChallengeMessage,
    FightDetails,
    FightDetailsUpdate,
    ResponseDetails,
    User,
    pair_key,
    utcnow,
)
from ..errors import AppError, invalid_status, not_authorized, not_found
from ..utils.pagination import page_window, paginate, parse_sort
from .state_machine import ChallengeStateMachine, ChallengeAction, REJECTION_MESSAGES

logger = structlog.get_logger(__name__)

COMPLETION_MESSAGE = "Challenge completed - fight has taken place!"


class ChallengeManager:
    """Manages the challenge lifecycle between two fighters."""

    def __init__(self, challenge_ops: ChallengeOps, user_ops: UserOps):
        self.challenge_ops = challenge_ops
        self.user_ops = user_ops

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_challenge(self, challenger_id: ObjectId, challenged_id: ObjectId,
                               message: str,
                               fight_details: Optional[FightDetailsUpdate] = None) -> Challenge:
        """Create a new pending challenge from one fighter to another."""
        if challenger_id == challenged_id:
            raise AppError("You cannot challenge yourself", 400, "SELF_CHALLENGE")

        challenger = await self.user_ops.get_user(challenger_id)
        if not challenger or not challenger.is_fighter:
            raise AppError("Only fighters can create challenges", 403, "NOT_FIGHTER")

        challenged = await self.user_ops.get_user(challenged_id)
        if not challenged:
            raise not_found("Challenged fighter not found", "FIGHTER_NOT_FOUND")
        if not challenged.is_fighter:
            raise AppError("You can only challenge fighters", 400, "TARGET_NOT_FIGHTER")

        existing = await self.challenge_ops.find_active_between(challenger_id, challenged_id)
        if existing:
            logger.warning("Challenge already exists between users",
                           challenger_id=str(challenger_id), challenged_id=str(challenged_id),
                           existing_id=str(existing.id))
            raise _challenge_exists()

        challenge = Challenge(
            challenger=challenger_id,
            challenged=challenged_id,
            fight_details=FightDetails(**(fight_details.changes() if fight_details else {})),
            messages=[ChallengeMessage(sender=challenger_id, message=message)],
            pair_key=pair_key(challenger_id, challenged_id),
        )

        try:
            await self.challenge_ops.create_challenge(challenge)
        except DuplicateKeyError:
            # Lost a race against a concurrent create for the same pair
            raise _challenge_exists()

        await self._sync_back_references(challenge)

        logger.info("Challenge created", challenge_id=str(challenge.id),
                    challenger_id=str(challenger_id), challenged_id=str(challenged_id))
        return challenge

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def accept_challenge(self, challenge_id: ObjectId, actor_id: ObjectId,
                               response_message: Optional[str] = None) -> Challenge:
        """Challenged fighter accepts a pending challenge."""
        challenge = await self._load(challenge_id)
        if challenge.challenged != actor_id:
            raise not_authorized("You can only accept challenges sent to you")

        self._apply(challenge, ChallengeAction.ACCEPT)
        self._respond(challenge, actor_id, "Challenge accepted!", response_message)
        await self._persist(challenge)
        return challenge

    async def decline_challenge(self, challenge_id: ObjectId, actor_id: ObjectId,
                                response_message: Optional[str] = None) -> Challenge:
        """Challenged fighter declines a pending challenge."""
        challenge = await self._load(challenge_id)
        if challenge.challenged != actor_id:
            raise not_authorized("You can only decline challenges sent to you")

        self._apply(challenge, ChallengeAction.DECLINE)
        self._respond(challenge, actor_id, "Challenge declined.", response_message)
        await self._persist(challenge)
        return challenge

    async def cancel_challenge(self, challenge_id: ObjectId, actor_id: ObjectId,
                               reason: Optional[str] = None) -> Challenge:
        """Challenger withdraws a pending or accepted challenge."""
        challenge = await self._load(challenge_id)
        if challenge.challenger != actor_id:
            raise not_authorized("You can only cancel challenges you created")

        self._apply(challenge, ChallengeAction.CANCEL)
        challenge.messages.append(ChallengeMessage(
            sender=actor_id,
            message=f"Challenge cancelled. {reason or ''}".strip(),
            is_system_message=True,
        ))
        await self._persist(challenge)
        return challenge

    async def complete_challenge(self, challenge_id: ObjectId, actor_id: ObjectId,
                                 fight_id: Optional[ObjectId] = None) -> Challenge:
        """Mark an accepted challenge as fought."""
        challenge = await self._load(challenge_id)
        if not challenge.is_participant(actor_id):
            raise not_authorized("You can only complete challenges you are part of")

        self._apply(challenge, ChallengeAction.COMPLETE)
        if fight_id is not None:
            challenge.related_fight = fight_id
        challenge.messages.append(ChallengeMessage(
            sender=None,
            message=COMPLETION_MESSAGE,
            is_system_message=True,
        ))
        await self._persist(challenge)
        return challenge

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    async def update_details(self, challenge_id: ObjectId, actor_id: ObjectId,
                             details: FightDetailsUpdate) -> Challenge:
        """Merge new fight terms into the existing ones."""
        challenge = await self._load(challenge_id)
        if not challenge.is_participant(actor_id):
            raise not_authorized("You can only update challenges you are part of")

        self._apply(challenge, ChallengeAction.UPDATE_DETAILS)

        merged = challenge.fight_details.model_dump(by_alias=True)
        merged.update(details.changes())
        challenge.fight_details = FightDetails(**merged)

        actor = await self.user_ops.get_user(actor_id)
        actor_name = actor.username if actor else "A participant"
        challenge.messages.append(ChallengeMessage(
            sender=actor_id,
            message=f"{actor_name} updated the fight details",
            is_system_message=True,
        ))
        await self._persist(challenge)
        return challenge

    async def add_message(self, challenge_id: ObjectId, actor_id: ObjectId, text: str) -> Challenge:
        """Append a participant's message to the conversation."""
        challenge = await self._load(challenge_id)
        if not challenge.is_participant(actor_id):
            raise not_authorized("You can only send messages in challenges you are part of")

        self._apply(challenge, ChallengeAction.ADD_MESSAGE)
        challenge.messages.append(ChallengeMessage(sender=actor_id, message=text))
        await self._persist(challenge)
        return challenge

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_for_user(self, user_id: ObjectId, status: Optional[str] = None,
                            role: str = "all", page: int = 1, limit: int = 10,
                            sort: str = "-updatedAt") -> Tuple[List[Challenge], Dict[str, Any]]:
        """Challenges the user takes part in, one page at a time."""
        if role == "challenger":
            query: Dict[str, Any] = {"challenger": user_id}
        elif role == "challenged":
            query = {"challenged": user_id}
        else:
            query = {"$or": [{"challenger": user_id}, {"challenged": user_id}]}

        if status:
            query["status"] = status

        skip, limit = page_window(page, limit)
        challenges = await self.challenge_ops.find_challenges(query, parse_sort(sort), skip, limit)
        total = await self.challenge_ops.count_challenges(query)

        return challenges, paginate(page, limit, total)

    async def pending_for_user(self, user_id: ObjectId) -> List[Challenge]:
        """Pending challenges waiting on this user's answer, newest first."""
        return await self.challenge_ops.find_challenges(
            {"challenged": user_id, "status": "pending"},
            parse_sort("-createdAt"),
        )

    async def get_challenge_for_user(self, challenge_id: ObjectId, actor_id: ObjectId) -> Challenge:
        challenge = await self._load(challenge_id)
        if not challenge.is_participant(actor_id):
            raise not_authorized("You can only view challenges you are part of")
        return challenge

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def build_views(self, challenges: List[Challenge]) -> List[Dict[str, Any]]:
        """Render challenges with participants and senders resolved."""
        user_ids = set()
        for challenge in challenges:
            user_ids.update(challenge.participants)
            user_ids.update(m.sender for m in challenge.messages if m.sender is not None)

        users = await self.user_ops.get_users_by_ids(user_ids)
        return [_render(challenge, users) for challenge in challenges]

    async def build_view(self, challenge: Challenge) -> Dict[str, Any]:
        views = await self.build_views([challenge])
        return views[0]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, challenge_id: ObjectId) -> Challenge:
        challenge = await self.challenge_ops.get_challenge(challenge_id)
        if not challenge:
            raise not_found("Challenge not found", "CHALLENGE_NOT_FOUND")
        return challenge

    def _apply(self, challenge: Challenge, action: ChallengeAction):
        """Run the action through the state machine or fail with the current status."""
        state_machine = ChallengeStateMachine(challenge.status)
        if not state_machine.apply(action):
            raise invalid_status(REJECTION_MESSAGES[action], challenge.status)
        challenge.status = state_machine.get_current_state().value

    def _respond(self, challenge: Challenge, actor_id: ObjectId, verdict: str,
                 response_message: Optional[str]):
        response_message = response_message or ""
        challenge.response_details = ResponseDetails(response_message=response_message)
        challenge.messages.append(ChallengeMessage(
            sender=actor_id,
            message=f"{verdict} {response_message}".strip(),
            is_system_message=True,
        ))

    async def _persist(self, challenge: Challenge):
        challenge.updated_at = utcnow()
        challenge.pair_key = (
            pair_key(challenge.challenger, challenge.challenged) if challenge.is_active else None
        )

        if not await self.challenge_ops.save_challenge(challenge):
            raise AppError(
                "Challenge was modified by another request, please retry",
                409,
                "CONCURRENT_MODIFICATION",
            )

        await self._sync_back_references(challenge)
        logger.info("Challenge saved", challenge_id=str(challenge.id),
                    status=challenge.status, version=challenge.version)

    async def _sync_back_references(self, challenge: Challenge):
        """Second write after the challenge itself; the challenge stays the source of truth."""
        try:
            await self.user_ops.add_challenge_ref(challenge.participants, challenge.id)
        except Exception as e:
            logger.error("Failed to update user challenge references",
                         challenge_id=str(challenge.id), error=str(e))


def _challenge_exists() -> AppError:
    return AppError(
        "An active challenge already exists between you and this fighter",
        409,
        "CHALLENGE_EXISTS",
    )


def _render(challenge: Challenge, users: Dict[ObjectId, User]) -> Dict[str, Any]:
    view = challenge.model_dump(mode="json", by_alias=True, exclude={"pair_key"})
    view["isActive"] = challenge.is_active

    for field in ("challenger", "challenged"):
        user = users.get(getattr(challenge, field))
        view[field] = user.summary() if user else {"_id": view[field]}

    for rendered, message in zip(view["messages"], challenge.messages):
        sender = users.get(message.sender) if message.sender is not None else None
        if sender is not None:
            rendered["sender"] = {"_id": str(sender.id), "username": sender.username}
        elif message.sender is not None:
            rendered["sender"] = {"_id": str(message.sender)}

    return view
