"""
Fighter directory routes.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ...accounts import AccountManager
from ...database.models import FightingStyle
from ..deps import get_accounts
from ..responses import ok

router = APIRouter(prefix="/fighters", tags=["fighters"])

FighterSort = Literal["createdAt", "-createdAt", "username", "-username", "weight", "-weight"]


async def list_fighters(
    weight: Optional[float] = Query(None),
    height: Optional[float] = Query(None),
    styles: Optional[List[FightingStyle]] = Query(None),
    city: Optional[str] = Query(None, max_length=100),
    state: Optional[str] = Query(None, max_length=100),
    country: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    sort: FighterSort = Query("-createdAt"),
    accounts: AccountManager = Depends(get_accounts),
):
    """Public fighter search; email addresses are never exposed here."""
    fighters, pagination = await accounts.list_fighters(
        weight=weight,
        height=height,
        styles=[style.value for style in styles] if styles else None,
        city=city,
        state=state,
        country=country,
        page=page,
        limit=limit,
        sort=sort,
    )
    return ok({
        "fighters": [fighter.to_public(include_email=False) for fighter in fighters],
        "pagination": pagination,
    })


router.add_api_route("", list_fighters, methods=["GET"])
