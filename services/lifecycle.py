"""Жизненный цикл аукциона

pending --approve--> active --expire/end--> ended
pending --reject--> rejected
active --delay--> active (только новое время окончания)

Победитель определяется один раз, при переходе в ended, и сохраняется
в аукционе. Уведомления отправляются после commit.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.locks import AuctionLocks, auction_locks
from database.models.auction import Auction, AuctionStatus
from database.models.bid import Bid
from database.models.user import User
from services import audit as audit_actions
from services.audit import AuditLog
from services.auction import get_auction_for_update
from services.auth import require_admin
from services.context import AuthContext, RequestMeta
from services.errors import Forbidden, InvalidInput, InvalidState, Unauthorized
from services.notifications import NotificationDispatcher, Recipient
from services.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

END_REASON_EXPIRED = "expired"
END_REASON_SELLER = "seller_manual_end"
END_REASON_ADMIN = "admin_manual_end"


@dataclass
class _ClosingNotice:
    """Кого уведомить после завершения"""
    seller: Optional[Recipient]
    winner: Optional[Recipient]


def _guard(auction: Auction, expected: AuctionStatus, action: str) -> None:
    if auction.status != expected.value:
        raise InvalidState(
            f"Нельзя выполнить действие '{action}': аукцион в статусе '{auction.status}'",
            status=auction.status
        )


async def find_winning_bid(session: AsyncSession, auction_id: int) -> Optional[Bid]:
    """Самая высокая ставка (она же последняя принятая)"""
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _close(session: AsyncSession, auction: Auction, moment: datetime) -> _ClosingNotice:
    """Перевести аукцион в ended и зафиксировать победителя. Без commit"""
    winning_bid = await find_winning_bid(session, auction.id)

    auction.status = AuctionStatus.ENDED.value
    auction.ended_at = moment
    if winning_bid:
        auction.winner_id = winning_bid.bidder_id
        auction.winning_bid_id = winning_bid.id
        auction.final_price = winning_bid.amount

    seller = await session.get(User, auction.seller_id)
    winner = await session.get(User, winning_bid.bidder_id) if winning_bid else None
    return _ClosingNotice(
        seller=Recipient.from_user(seller) if seller else None,
        winner=Recipient.from_user(winner) if winner else None
    )


def _notify_closed(
    notifications: Optional[NotificationDispatcher],
    auction: Auction,
    notice: _ClosingNotice
) -> None:
    if not notifications:
        return
    if notice.winner:
        notifications.notify_win(notice.winner, auction.title, auction.final_price, auction.id)
    if notice.seller:
        notifications.notify_auction_ended(notice.seller, auction.title, auction.final_price, auction.id)


async def approve_auction(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    *,
    notifications: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks
) -> Auction:
    """Одобрить аукцион: pending -> active, отсчет времени начинается сейчас"""
    require_admin(actor)

    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            _guard(auction, AuctionStatus.PENDING, "approve")

            moment = now or utcnow()
            auction.status = AuctionStatus.ACTIVE.value
            auction.start_time = moment
            auction.end_time = moment + timedelta(minutes=auction.duration_minutes)
            seller = await session.get(User, auction.seller_id)
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    logger.info(f"Аукцион {auction_id} одобрен, завершится {auction.end_time}")

    if notifications and seller:
        notifications.notify_approval(Recipient.from_user(seller), auction.title, auction.id)
    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_APPROVED,
            {
                "start_time": auction.start_time.isoformat(),
                "end_time": auction.end_time.isoformat(),
                "duration": auction.duration_minutes,
            },
            meta
        )
    return auction


async def reject_auction(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    reason: Optional[str] = None,
    *,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    locks: AuctionLocks = auction_locks
) -> Auction:
    """Отклонить аукцион: pending -> rejected"""
    require_admin(actor)

    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            _guard(auction, AuctionStatus.PENDING, "reject")
            auction.status = AuctionStatus.REJECTED.value
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    logger.info(f"Аукцион {auction_id} отклонен")
    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_REJECTED,
            {"reason": reason} if reason else None,
            meta
        )
    return auction


async def end_auction(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    *,
    notifications: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks
) -> Auction:
    """Завершить аукцион вручную (продавец или админ)"""
    if actor.user_id is None and not actor.is_admin:
        raise Unauthorized("Требуется авторизация")

    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            if not actor.is_admin and auction.seller_id != actor.user_id:
                raise Forbidden("Завершить аукцион может только продавец или администратор")
            _guard(auction, AuctionStatus.ACTIVE, "end")

            notice = await _close(session, auction, now or utcnow())
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    reason = END_REASON_ADMIN if actor.is_admin else END_REASON_SELLER
    logger.info(f"Аукцион {auction_id} завершен вручную ({reason}). Победитель: {auction.winner_id}")

    _notify_closed(notifications, auction, notice)
    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_ENDED,
            {"final_price": auction.final_price, "winner_id": auction.winner_id, "reason": reason},
            meta
        )
    return auction


async def expire_auction(
    session: AsyncSession,
    auction_id: int,
    *,
    notifications: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditLog] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks
) -> Optional[Auction]:
    """Завершить истекший аукцион (планировщик)

    Повторный вызов для уже завершенного аукциона ничего не делает и
    возвращает None, как и вызов для аукциона, время которого успели продлить.
    """
    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            if auction.status == AuctionStatus.ENDED.value:
                await session.rollback()
                logger.debug(f"Аукцион {auction_id} уже завершен")
                return None
            _guard(auction, AuctionStatus.ACTIVE, "expire")

            moment = now or utcnow()
            end_time = as_utc(auction.end_time)
            if end_time is not None and end_time > moment:
                await session.rollback()
                logger.info(f"Аукцион {auction_id} продлен до {end_time}, завершение пропущено")
                return None

            notice = await _close(session, auction, moment)
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    logger.info(f"Аукцион {auction_id} завершен по времени. Победитель: {auction.winner_id}")

    _notify_closed(notifications, auction, notice)
    if audit:
        await audit.record(
            auction_id,
            AuthContext.system().user_id,
            audit_actions.ACTION_ENDED,
            {"final_price": auction.final_price, "winner_id": auction.winner_id, "reason": END_REASON_EXPIRED}
        )
    return auction


async def delay_auction_end(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    minutes: int,
    *,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks
) -> Auction:
    """Перенести окончание активного аукциона: через minutes минут от текущего момента"""
    require_admin(actor)
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes < 1:
        raise InvalidInput("Укажите корректное количество минут")

    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            _guard(auction, AuctionStatus.ACTIVE, "delay")

            original_end_time = as_utc(auction.end_time)
            auction.end_time = (now or utcnow()) + timedelta(minutes=minutes)
            await session.commit()
        except BaseException:
            await session.rollback()
            raise

    logger.info(f"Окончание аукциона {auction_id} перенесено на {auction.end_time}")
    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_DELAYED_END,
            {
                "delay_minutes": minutes,
                "original_end_time": original_end_time.isoformat() if original_end_time else None,
                "new_end_time": auction.end_time.isoformat(),
            },
            meta
        )
    return auction
