"""Обработчики аукционов"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import (
    get_audit,
    get_auth_context,
    get_notifications,
    get_request_meta,
    get_session,
)
from api.schemas import (
    AuctionDetailOut,
    AuctionOut,
    AuctionStateOut,
    BidResultOut,
    CreateAuctionRequest,
    CreatedAuctionResponse,
    PlaceBidRequest,
)
from services.audit import AuditLog
from services.auction import (
    create_auction,
    get_auction_detail,
    get_hot_auction,
    list_active_auctions,
    list_ended_auctions,
)
from services.bidding import place_bid
from services.context import AuthContext, RequestMeta
from services.lifecycle import end_auction
from services.notifications import NotificationDispatcher

router = APIRouter(prefix="/api/auctions", tags=["auctions"])


@router.get("", response_model=List[AuctionOut])
async def list_auctions(session: AsyncSession = Depends(get_session)):
    """Активные аукционы"""
    summaries = await list_active_auctions(session)
    return [AuctionOut.from_summary(summary) for summary in summaries]


@router.get("/ended", response_model=List[AuctionOut])
async def list_ended(limit: int = 20, session: AsyncSession = Depends(get_session)):
    """Последние завершенные аукционы"""
    summaries = await list_ended_auctions(session, limit=limit)
    return [AuctionOut.from_summary(summary) for summary in summaries]


@router.get("/hot", response_model=Optional[AuctionOut])
async def hot_auction(session: AsyncSession = Depends(get_session)):
    summary = await get_hot_auction(session)
    return AuctionOut.from_summary(summary) if summary else None


@router.get("/{auction_id}", response_model=AuctionDetailOut)
async def auction_detail(auction_id: int, session: AsyncSession = Depends(get_session)):
    """Аукцион с историей ставок"""
    detail = await get_auction_detail(session, auction_id)
    return AuctionDetailOut.from_detail(detail)


@router.post("", response_model=CreatedAuctionResponse, status_code=201)
async def create(
    payload: CreateAuctionRequest,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(get_auth_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
):
    """Создать аукцион (ждет одобрения администратора)"""
    auction = await create_auction(
        session,
        actor,
        title=payload.title,
        starting_price=payload.starting_price,
        duration=payload.duration,
        description=payload.description,
        category=payload.category,
        images=payload.images,
        audit=audit,
        meta=meta,
    )
    return CreatedAuctionResponse(
        message="Аукцион создан и будет опубликован после одобрения администратором",
        auction_id=auction.id,
    )


@router.post("/{auction_id}/bid", response_model=BidResultOut)
async def bid(
    auction_id: int,
    payload: PlaceBidRequest,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(get_auth_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
):
    """Сделать ставку"""
    result = await place_bid(session, auction_id, actor, payload.amount, audit=audit, meta=meta)
    return BidResultOut.from_result(result)


@router.patch("/{auction_id}/end", response_model=AuctionStateOut)
async def end_by_seller(
    auction_id: int,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(get_auth_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Завершить свой аукцион досрочно"""
    auction = await end_auction(
        session, auction_id, actor, notifications=notifications, audit=audit, meta=meta
    )
    return AuctionStateOut.from_auction(auction, "Аукцион завершен")
