"""Прием ставок

Ставка принимается только под блокировкой аукциона: актуальное состояние
читается заново, проверяется, затем в одной транзакции добавляется ставка
и обновляется текущая цена. Частично примененной ставки быть не может.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from database.locks import AuctionLocks, auction_locks
from database.models.auction import Auction, AuctionStatus
from database.models.bid import Bid
from services import audit as audit_actions
from services.audit import AuditLog
from services.auction import count_bids, get_auction_for_update, is_valid_amount
from services.context import AuthContext, RequestMeta
from services.errors import Conflict, InvalidInput, InvalidState, RequestTimeout, Unauthorized
from services.timeutils import as_utc, utcnow
from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BidResult:
    """Результат принятой ставки"""
    bid_id: int
    auction_id: int
    current_price: int
    previous_price: int
    bid_count: int
    participant_count: int
    created_at: datetime


def check_bid(
    auction: Auction,
    bidder_id: int,
    amount: int,
    now: datetime,
    grace: timedelta
) -> None:
    """Проверить ставку по актуальному состоянию аукциона"""
    if auction.status != AuctionStatus.ACTIVE.value:
        raise InvalidState(
            "Аукцион не активен",
            reason="not_active",
            status=auction.status,
            current_price=auction.current_price
        )

    if auction.seller_id == bidder_id:
        raise InvalidState(
            "Нельзя делать ставки на собственный аукцион",
            reason="self_bid",
            status=auction.status,
            current_price=auction.current_price
        )

    # Защита от ставок в последнюю секунду перед автозавершением
    end_time = as_utc(auction.end_time)
    if end_time is not None and now >= end_time - grace:
        raise InvalidState(
            f"Ставки не принимаются менее чем за {int(grace.total_seconds())} секунд до конца аукциона",
            reason="too_late",
            status=auction.status,
            current_price=auction.current_price
        )

    if amount <= auction.current_price:
        raise InvalidState(
            f"Ставка должна быть выше текущей цены ({auction.current_price:,} вон)",
            reason="price_too_low",
            status=auction.status,
            current_price=auction.current_price
        )


async def _commit_bid(
    session: AsyncSession,
    auction_id: int,
    bidder_id: int,
    amount: int,
    now: Optional[datetime],
    grace: timedelta,
    locks: AuctionLocks
) -> BidResult:
    async with locks.hold(auction_id):
        try:
            auction = await get_auction_for_update(session, auction_id)
            # Время берем уже под блокировкой
            moment = now or utcnow()
            check_bid(auction, bidder_id, amount, moment, grace)
            previous_price = auction.current_price

            # Условное обновление: цена меняется, только если новая ставка выше
            result = await session.execute(
                update(Auction)
                .where(Auction.id == auction_id, Auction.current_price < amount)
                .values(current_price=amount)
            )
            if result.rowcount != 1:
                raise Conflict(
                    "Цена изменилась, пока ставка обрабатывалась",
                    current_price=auction.current_price,
                    status=auction.status
                )

            bid = Bid(
                auction_id=auction_id,
                bidder_id=bidder_id,
                amount=amount,
                created_at=moment
            )
            session.add(bid)
            await session.flush()

            bid_count, participant_count = await count_bids(session, auction_id)
            await session.commit()
        except BaseException:
            # Ошибка, отмена или таймаут - откатываем все целиком
            await session.rollback()
            raise

    return BidResult(
        bid_id=bid.id,
        auction_id=auction_id,
        current_price=amount,
        previous_price=previous_price,
        bid_count=bid_count,
        participant_count=participant_count,
        created_at=moment
    )


async def place_bid(
    session: AsyncSession,
    auction_id: int,
    actor: AuthContext,
    amount: int,
    *,
    audit: Optional[AuditLog] = None,
    meta: Optional[RequestMeta] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks,
    grace_seconds: Optional[int] = None,
    timeout: Optional[float] = None
) -> BidResult:
    """Сделать ставку"""
    if actor.user_id is None:
        raise Unauthorized("Требуется авторизация")
    if not is_valid_amount(amount):
        raise InvalidInput("Сумма ставки должна быть положительным целым числом")

    grace = timedelta(seconds=settings.BID_GRACE_SECONDS if grace_seconds is None else grace_seconds)
    timeout = settings.BID_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        result = await asyncio.wait_for(
            _commit_bid(session, auction_id, actor.user_id, amount, now, grace, locks),
            timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"Таймаут ставки: аукцион {auction_id}, пользователь {actor.user_id}, сумма {amount}")
        raise RequestTimeout("Ставка не была принята, повторите попытку")

    logger.info(
        f"[ставка] Аукцион {auction_id}, пользователь {actor.user_id}, сумма {amount:,}, "
        f"предыдущая цена {result.previous_price:,}"
    )

    if audit:
        await audit.record(
            auction_id,
            actor.user_id,
            audit_actions.ACTION_BID_PLACED,
            {
                "amount": amount,
                "previous_price": result.previous_price,
                "new_price": amount,
            },
            meta
        )
    return result
