"""Сервис для работы с аукционами"""
from dataclasses import dataclass, field
from typing import Optional
import json
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, distinct
from database.locks import AuctionLocks, auction_locks
from database.models.auction import Auction, AuctionStatus
from database.models.bid import Bid
from database.models.user import User
from services import audit as audit_actions
from services.audit import AuditLog
from services.auth import require_admin
from services.context import AuthContext, RequestMeta
from services.errors import Conflict, InvalidInput, NotFound, Unauthorized
from services.notifications import NotificationDispatcher, Recipient
from config import settings

logger = logging.getLogger(__name__)

# Коды длительности аукциона -> минуты
DURATION_CODES = {
    "1h": 60,
    "6h": 360,
    "1d": 1440,
    "3d": 4320,
}

USER_AUCTION_KINDS = ("selling", "bidding", "won")

# Верхняя граница суммы: колонки цен - BIGINT
MAX_AMOUNT = 2 ** 63 - 1


@dataclass
class AuctionSummary:
    """Аукцион со счетчиками ставок"""
    auction: Auction
    seller_name: Optional[str]
    bid_count: int = 0
    participant_count: int = 0


@dataclass
class BidView:
    """Ставка с именем участника"""
    bid: Bid
    bidder_name: Optional[str]


@dataclass
class AuctionDetail:
    """Аукцион с историей ставок"""
    summary: AuctionSummary
    bids: list[BidView] = field(default_factory=list)


def parse_duration(code: Optional[str]) -> int:
    """Код длительности (1h, 6h, 1d, 3d) в минуты"""
    code = code or settings.DEFAULT_DURATION_CODE
    if code not in DURATION_CODES:
        raise InvalidInput(
            f"Неизвестная длительность аукциона: {code}. Допустимо: {', '.join(DURATION_CODES)}"
        )
    return DURATION_CODES[code]


def is_valid_amount(value) -> bool:
    """Денежные суммы - целые вон, больше нуля и не больше MAX_AMOUNT"""
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_AMOUNT


async def create_auction(
    session: AsyncSession,
    actor: AuthContext,
    title: str,
    starting_price: int,
    duration: Optional[str] = None,
    description: Optional[str] = None,
    category: Optional[str] = None,
    images: Optional[list[str]] = None,
    *,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None
) -> Auction:
    """Создать аукцион. Он ждет одобрения администратора"""
    if actor.user_id is None:
        raise Unauthorized("Требуется авторизация")
    if not title or not title.strip():
        raise InvalidInput("Укажите название аукциона")
    if not is_valid_amount(starting_price):
        raise InvalidInput("Начальная цена должна быть положительным целым числом")
    duration_minutes = parse_duration(duration)

    auction = Auction(
        title=title.strip(),
        description=description,
        starting_price=starting_price,
        current_price=starting_price,
        seller_id=actor.user_id,
        category=category,
        images=json.dumps(list(images or []), ensure_ascii=False),
        status=AuctionStatus.PENDING.value,
        duration_minutes=duration_minutes,
        is_hot=False
    )
    session.add(auction)
    await session.commit()
    await session.refresh(auction)

    logger.info(f"Аукцион {auction.id} создан пользователем {actor.user_id}, ожидает одобрения")
    if audit:
        await audit.record(
            auction.id,
            actor.user_id,
            audit_actions.ACTION_CREATED,
            {
                "title": auction.title,
                "category": category,
                "starting_price": starting_price,
                "duration": duration or settings.DEFAULT_DURATION_CODE,
                "status": auction.status,
            },
            meta
        )
    return auction


async def get_auction_for_update(session: AsyncSession, auction_id: int) -> Auction:
    """Прочитать актуальное состояние аукциона с блокировкой строки"""
    result = await session.execute(
        select(Auction)
        .where(Auction.id == auction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    auction = result.scalar_one_or_none()

    if not auction:
        raise NotFound("Аукцион не найден")

    return auction


async def count_bids(session: AsyncSession, auction_id: int) -> tuple[int, int]:
    """Количество ставок и количество разных участников"""
    result = await session.execute(
        select(func.count(Bid.id), func.count(distinct(Bid.bidder_id)))
        .where(Bid.auction_id == auction_id)
    )
    bid_count, participant_count = result.one()
    return bid_count or 0, participant_count or 0


def _summary_query():
    return (
        select(
            Auction,
            User.username,
            func.count(Bid.id),
            func.count(distinct(Bid.bidder_id))
        )
        .outerjoin(User, Auction.seller_id == User.id)
        .outerjoin(Bid, Bid.auction_id == Auction.id)
        .group_by(Auction.id, User.username)
    )


async def _fetch_summaries(session: AsyncSession, query) -> list[AuctionSummary]:
    result = await session.execute(query)
    return [
        AuctionSummary(
            auction=auction,
            seller_name=seller_name,
            bid_count=bid_count or 0,
            participant_count=participant_count or 0
        )
        for auction, seller_name, bid_count, participant_count in result.all()
    ]


async def list_active_auctions(session: AsyncSession) -> list[AuctionSummary]:
    """Получить активные аукционы"""
    return await _fetch_summaries(
        session,
        _summary_query()
        .where(Auction.status == AuctionStatus.ACTIVE.value)
        .order_by(Auction.created_at.desc(), Auction.id.desc())
    )


async def list_ended_auctions(session: AsyncSession, limit: int = 20) -> list[AuctionSummary]:
    """Получить последние завершенные аукционы"""
    return await _fetch_summaries(
        session,
        _summary_query()
        .where(Auction.status == AuctionStatus.ENDED.value)
        .order_by(Auction.ended_at.desc(), Auction.id.desc())
        .limit(limit)
    )


async def list_pending_auctions(session: AsyncSession) -> list[AuctionSummary]:
    """Получить аукционы, ожидающие одобрения"""
    return await _fetch_summaries(
        session,
        _summary_query()
        .where(Auction.status == AuctionStatus.PENDING.value)
        .order_by(Auction.created_at.asc(), Auction.id.asc())
    )


async def list_all_auctions(
    session: AsyncSession,
    status: Optional[str] = None,
    category: Optional[str] = None
) -> list[AuctionSummary]:
    """Все аукционы (для админа) с необязательными фильтрами"""
    query = _summary_query()
    if status is not None:
        if status not in {s.value for s in AuctionStatus}:
            raise InvalidInput(f"Неизвестный статус: {status}")
        query = query.where(Auction.status == status)
    if category is not None:
        query = query.where(Auction.category == category)
    return await _fetch_summaries(session, query.order_by(Auction.created_at.desc(), Auction.id.desc()))


async def get_hot_auction(session: AsyncSession) -> Optional[AuctionSummary]:
    """Получить горячий аукцион, если он активен"""
    summaries = await _fetch_summaries(
        session,
        _summary_query()
        .where(Auction.is_hot.is_(True), Auction.status == AuctionStatus.ACTIVE.value)
        .limit(1)
    )
    return summaries[0] if summaries else None


async def get_auction_detail(session: AsyncSession, auction_id: int) -> AuctionDetail:
    """Аукцион с историей ставок (по убыванию суммы)"""
    summaries = await _fetch_summaries(session, _summary_query().where(Auction.id == auction_id))
    if not summaries:
        raise NotFound("Аукцион не найден")

    result = await session.execute(
        select(Bid, User.username)
        .outerjoin(User, Bid.bidder_id == User.id)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.id.desc())
    )
    bids = [BidView(bid=bid, bidder_name=name) for bid, name in result.all()]
    return AuctionDetail(summary=summaries[0], bids=bids)


async def list_user_auctions(session: AsyncSession, user_id: int, kind: str) -> list[AuctionSummary]:
    """Аукционы пользователя: selling, bidding или won"""
    query = _summary_query()
    if kind == "selling":
        query = query.where(
            Auction.seller_id == user_id,
            Auction.status == AuctionStatus.ACTIVE.value
        )
    elif kind == "bidding":
        user_bids = select(Bid.auction_id).where(Bid.bidder_id == user_id)
        query = query.where(
            Auction.id.in_(user_bids),
            Auction.status == AuctionStatus.ACTIVE.value
        )
    elif kind == "won":
        # Победитель зафиксирован при завершении
        query = query.where(
            Auction.winner_id == user_id,
            Auction.status == AuctionStatus.ENDED.value
        )
    else:
        raise InvalidInput(f"Неизвестный тип списка: {kind}. Допустимо: {', '.join(USER_AUCTION_KINDS)}")

    return await _fetch_summaries(session, query.order_by(Auction.created_at.desc(), Auction.id.desc()))


async def get_user_stats(session: AsyncSession, user_id: int) -> dict[str, int]:
    """Статистика пользователя: продажи, аукционы со ставками, победы"""
    sales = await session.scalar(
        select(func.count(Auction.id)).where(Auction.seller_id == user_id)
    )
    bids = await session.scalar(
        select(func.count(distinct(Bid.auction_id))).where(Bid.bidder_id == user_id)
    )
    wins = await session.scalar(
        select(func.count(Auction.id)).where(
            Auction.winner_id == user_id,
            Auction.status == AuctionStatus.ENDED.value
        )
    )
    return {"sales": sales or 0, "bids": bids or 0, "wins": wins or 0}


async def set_hot(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    is_hot: bool,
    *,
    notifications: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    locks: AuctionLocks = auction_locks
) -> Auction:
    """Установить или снять флаг горячего аукциона (горячий - не больше одного)"""
    require_admin(actor)

    async with locks.hold_hot():
        async with locks.hold(auction_id):
            try:
                auction = await get_auction_for_update(session, auction_id)
                if is_hot:
                    # Снимаем флаг с остальных в той же транзакции
                    await session.execute(
                        update(Auction)
                        .where(Auction.is_hot.is_(True), Auction.id != auction_id)
                        .values(is_hot=False)
                    )
                auction.is_hot = is_hot
                seller = await session.get(User, auction.seller_id) if is_hot else None
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise Conflict("Другой аукцион уже отмечен как горячий, повторите попытку") from e
            except BaseException:
                await session.rollback()
                raise

    logger.info(f"Аукцион {auction_id}: горячий={is_hot} (админ {actor.user_id})")

    if is_hot and seller and notifications:
        notifications.notify_hot(Recipient.from_user(seller), auction.title, auction.id)

    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_SET_HOT if is_hot else audit_actions.ACTION_UNSET_HOT,
            {"auction_title": auction.title, "is_hot": is_hot},
            meta
        )
    return auction
