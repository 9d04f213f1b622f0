"""
Challenge routes.

Fixed paths (/my, /pending) are declared before /{challenge_id}.
"""

from typing import Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query

from ...challenge import ChallengeManager
from ...database.models import ChallengeStatus
from ..deps import challenge_id_path, get_challenges, get_current_user_id
from ..responses import ok
from ..schemas import (
    CancelRequest,
    CompleteRequest,
    CreateChallengeRequest,
    MessageRequest,
    RespondRequest,
    UpdateDetailsRequest,
)

router = APIRouter(prefix="/challenges", tags=["challenges"])

ChallengeSort = Literal["createdAt", "-createdAt", "updatedAt", "-updatedAt"]


@router.post("", status_code=201)
async def create_challenge(body: CreateChallengeRequest,
                           user_id: ObjectId = Depends(get_current_user_id),
                           challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.create_challenge(
        user_id, body.challenged_id, body.message, body.fight_details
    )
    return ok({"challenge": await challenges.build_view(challenge)}, "Challenge sent successfully!")


@router.get("/my")
async def my_challenges(status: Optional[ChallengeStatus] = Query(None),
                        role: Literal["challenger", "challenged", "all"] = Query("all"),
                        page: int = Query(1, ge=1),
                        limit: int = Query(10, ge=1, le=50),
                        sort: ChallengeSort = Query("-updatedAt"),
                        user_id: ObjectId = Depends(get_current_user_id),
                        challenges: ChallengeManager = Depends(get_challenges)):
    found, pagination = await challenges.list_for_user(
        user_id,
        status=status.value if status else None,
        role=role,
        page=page,
        limit=limit,
        sort=sort,
    )
    return ok({"challenges": await challenges.build_views(found), "pagination": pagination})


@router.get("/pending")
async def pending_challenges(user_id: ObjectId = Depends(get_current_user_id),
                             challenges: ChallengeManager = Depends(get_challenges)):
    found = await challenges.pending_for_user(user_id)
    return ok({"challenges": await challenges.build_views(found), "count": len(found)})


@router.get("/{challenge_id}")
async def get_challenge(user_id: ObjectId = Depends(get_current_user_id),
                        challenge_id: ObjectId = Depends(challenge_id_path),
                        challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.get_challenge_for_user(challenge_id, user_id)
    return ok({"challenge": await challenges.build_view(challenge)})


@router.patch("/{challenge_id}/accept")
async def accept_challenge(body: Optional[RespondRequest] = None,
                           user_id: ObjectId = Depends(get_current_user_id),
                           challenge_id: ObjectId = Depends(challenge_id_path),
                           challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.accept_challenge(
        challenge_id, user_id, body.response_message if body else None
    )
    return ok({"challenge": await challenges.build_view(challenge)}, "Challenge accepted!")


@router.patch("/{challenge_id}/decline")
async def decline_challenge(body: Optional[RespondRequest] = None,
                            user_id: ObjectId = Depends(get_current_user_id),
                            challenge_id: ObjectId = Depends(challenge_id_path),
                            challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.decline_challenge(
        challenge_id, user_id, body.response_message if body else None
    )
    return ok({"challenge": await challenges.build_view(challenge)}, "Challenge declined")


@router.delete("/{challenge_id}")
async def cancel_challenge(body: Optional[CancelRequest] = None,
                           user_id: ObjectId = Depends(get_current_user_id),
                           challenge_id: ObjectId = Depends(challenge_id_path),
                           challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.cancel_challenge(
        challenge_id, user_id, body.reason if body else None
    )
    return ok({"challenge": await challenges.build_view(challenge)}, "Challenge cancelled")


@router.patch("/{challenge_id}/details")
async def update_details(body: UpdateDetailsRequest,
                         user_id: ObjectId = Depends(get_current_user_id),
                         challenge_id: ObjectId = Depends(challenge_id_path),
                         challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.update_details(challenge_id, user_id, body.fight_details)
    return ok({"challenge": await challenges.build_view(challenge)},
              "Challenge details updated successfully")


@router.post("/{challenge_id}/messages", status_code=201)
async def add_message(body: MessageRequest,
                      user_id: ObjectId = Depends(get_current_user_id),
                      challenge_id: ObjectId = Depends(challenge_id_path),
                      challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.add_message(challenge_id, user_id, body.message)
    return ok({"challenge": await challenges.build_view(challenge)}, "Message sent successfully")


@router.patch("/{challenge_id}/complete")
async def complete_challenge(body: Optional[CompleteRequest] = None,
                             user_id: ObjectId = Depends(get_current_user_id),
                             challenge_id: ObjectId = Depends(challenge_id_path),
                             challenges: ChallengeManager = Depends(get_challenges)):
    challenge = await challenges.complete_challenge(
        challenge_id, user_id, body.fight_id if body else None
    )
    return ok({"challenge": await challenges.build_view(challenge)},
              "Challenge marked as completed")
