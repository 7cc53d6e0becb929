"""Обработчики для админов"""
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
    AuctionOut,
    AuctionStateOut,
    DelayEndRequest,
    LogEntryOut,
    LogsResponse,
    RejectRequest,
    SetHotRequest,
)
from services.audit import AuditLog, get_logs
from services.auction import list_all_auctions, list_pending_auctions, set_hot
from services.auth import require_admin
from services.context import AuthContext, RequestMeta
from services.lifecycle import approve_auction, delay_auction_end, end_auction, reject_auction
from services.notifications import NotificationDispatcher

router = APIRouter(prefix="/api/admin", tags=["admin"])


async def admin_context(actor: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Только для администраторов"""
    require_admin(actor)
    return actor


@router.get("/auctions/pending", response_model=List[AuctionOut])
async def pending_auctions(
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
):
    """Аукционы, ожидающие одобрения"""
    summaries = await list_pending_auctions(session)
    return [AuctionOut.from_summary(summary) for summary in summaries]


@router.get("/auctions", response_model=List[AuctionOut])
async def all_auctions(
    status: Optional[str] = None,
    category: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
):
    """Все аукционы"""
    summaries = await list_all_auctions(session, status=status, category=category)
    return [AuctionOut.from_summary(summary) for summary in summaries]


@router.get("/logs", response_model=LogsResponse)
async def auction_logs(
    auction_id: Optional[int] = None,
    limit: int = 100,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
):
    """Журнал действий"""
    logs = await get_logs(session, auction_id=auction_id, limit=limit)
    return LogsResponse(logs=[LogEntryOut(**entry) for entry in logs], total=len(logs))


@router.post("/auctions/{auction_id}/approve", response_model=AuctionStateOut)
async def approve(
    auction_id: int,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    auction = await approve_auction(
        session, auction_id, actor, notifications=notifications, audit=audit, meta=meta
    )
    return AuctionStateOut.from_auction(auction, "Аукцион одобрен")


@router.post("/auctions/{auction_id}/reject", response_model=AuctionStateOut)
async def reject(
    auction_id: int,
    payload: Optional[RejectRequest] = None,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
):
    auction = await reject_auction(
        session,
        auction_id,
        actor,
        reason=payload.reason if payload else None,
        audit=audit,
        meta=meta,
    )
    return AuctionStateOut.from_auction(auction, "Аукцион отклонен")


@router.post("/auctions/{auction_id}/end", response_model=AuctionStateOut)
async def end(
    auction_id: int,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    auction = await end_auction(
        session, auction_id, actor, notifications=notifications, audit=audit, meta=meta
    )
    return AuctionStateOut.from_auction(auction, "Аукцион завершен")


@router.post("/auctions/{auction_id}/delay-end", response_model=AuctionStateOut)
async def delay_end(
    auction_id: int,
    payload: DelayEndRequest,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
):
    auction = await delay_auction_end(
        session, auction_id, actor, payload.minutes, audit=audit, meta=meta
    )
    return AuctionStateOut.from_auction(auction, f"Аукцион завершится через {payload.minutes} мин.")


@router.post("/auctions/{auction_id}/set-hot", response_model=AuctionStateOut)
async def set_hot_flag(
    auction_id: int,
    payload: SetHotRequest,
    session: AsyncSession = Depends(get_session),
    actor: AuthContext = Depends(admin_context),
    meta: RequestMeta = Depends(get_request_meta),
    audit: AuditLog = Depends(get_audit),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    auction = await set_hot(
        session,
        auction_id,
        actor,
        payload.is_hot,
        notifications=notifications,
        audit=audit,
        meta=meta,
    )
    message = "Аукцион отмечен как горячий" if payload.is_hot else "Отметка горячего аукциона снята"
    return AuctionStateOut.from_auction(auction, message)
