"""
Account routes.
"""

from bson import ObjectId
from fastapi import APIRouter, Depends

from ...accounts import AccountManager
from ..deps import fighter_id_path, get_accounts, get_current_user_id
from ..responses import ok
from ..schemas import (
    FighterProfileRequest,
    SigninRequest,
    SignupRequest,
    UpdateProfileRequest,
    update_fields,
)
from .fighters import list_fighters

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.signup(body.username, body.email, body.password)
    return ok({"user": user.to_public()}, "User registered successfully!")


@router.post("/signin")
async def signin(body: SigninRequest, accounts: AccountManager = Depends(get_accounts)):
    token, user = await accounts.signin(body.username, body.password)
    return ok({"token": token, "user": user.to_public()}, "Signed in successfully")


router.add_api_route("/fighters", list_fighters, methods=["GET"])


@router.get("/me")
async def get_me(user_id: ObjectId = Depends(get_current_user_id),
                 accounts: AccountManager = Depends(get_accounts)):
    user, favorites = await accounts.get_profile(user_id)
    return ok({"user": user.to_public(), "favoriteFighters": favorites})


@router.patch("/me")
async def update_me(body: UpdateProfileRequest,
                    user_id: ObjectId = Depends(get_current_user_id),
                    accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.update_profile(user_id, update_fields(body))
    return ok({"user": user.to_public()}, "Profile updated successfully")


@router.post("/become-fighter")
async def become_fighter(user_id: ObjectId = Depends(get_current_user_id),
                         accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.become_fighter(user_id)
    return ok({"user": user.to_public()}, "Welcome to the cage! You are now a fighter.")


@router.patch("/me/fighter")
async def update_fighter_profile(body: FighterProfileRequest,
                                 user_id: ObjectId = Depends(get_current_user_id),
                                 accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.update_fighter_profile(user_id, update_fields(body))
    return ok({"user": user.to_public()}, "Fighter profile updated successfully")


@router.post("/follow/{fighter_id}")
async def follow(user_id: ObjectId = Depends(get_current_user_id),
                 fighter_id: ObjectId = Depends(fighter_id_path),
                 accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.follow_fighter(user_id, fighter_id)
    return ok({"favoriteFighters": [str(f) for f in user.favorite_fighters]}, "Fighter followed")


@router.delete("/follow/{fighter_id}")
async def unfollow(user_id: ObjectId = Depends(get_current_user_id),
                   fighter_id: ObjectId = Depends(fighter_id_path),
                   accounts: AccountManager = Depends(get_accounts)):
    user = await accounts.unfollow_fighter(user_id, fighter_id)
    return ok({"favoriteFighters": [str(f) for f in user.favorite_fighters]}, "Fighter unfollowed")
