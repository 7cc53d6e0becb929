"""Обработчики личного кабинета"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_auth_context, get_session
from api.schemas import AuctionOut, UserStatsOut
from services.auction import get_user_stats, list_user_auctions
from services.context import AuthContext

router = APIRouter(prefix="/api/users/me", tags=["users"])


@router.get("/stats", response_model=UserStatsOut)
async def my_stats(
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(get_auth_context),
):
    return UserStatsOut(**await get_user_stats(session, actor.user_id))


@router.get("/auctions/{kind}", response_model=List[AuctionOut])
async def my_auctions(
    kind: str,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(get_auth_context),
):
    """Мои аукционы: selling, bidding или won"""
    summaries = await list_user_auctions(session, actor.user_id, kind)
    return [AuctionOut.from_summary(summary) for summary in summaries]
