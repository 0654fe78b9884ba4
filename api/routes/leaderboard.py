"""Leaderboard endpoint."""

from fastapi import APIRouter, Query

from api.accounts import get_account_store
from api.schemas import AccountResponse
from config import config

router = APIRouter()


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(
        default=config.leaderboard.default_limit,
        ge=1,
        le=config.leaderboard.max_limit,
    ),
) -> list[AccountResponse]:
    """Top accounts by points, highest first."""
    store = await get_account_store()
    accounts = await store.list_leaderboard(limit)
    return [AccountResponse.model_validate(a) for a in accounts]
