"""Журнал аудита действий с аукционами

Запись идет в таблицу auction_logs (отдельной сессией, после commit основной
операции) и в логгер auction.audit. Ошибка записи логируется и не прерывает
основную операцию.
"""
import json
import logging
from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from database.models.auction import Auction
from database.models.auction_log import AuctionLog
from database.models.user import User
from services.context import RequestMeta

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("auction.audit")

# Действия, которые попадают в журнал
ACTION_CREATED = "created"
ACTION_BID_PLACED = "bid_placed"
ACTION_APPROVED = "approved"
ACTION_REJECTED = "rejected"
ACTION_ENDED = "ended"
ACTION_DELAYED_END = "delayed_end"
ACTION_SET_HOT = "set_hot"
ACTION_UNSET_HOT = "unset_hot"


def configure_audit_file(path: str) -> logging.Handler:
    """Дублировать журнал аудита в текстовый файл"""
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s"))
    audit_logger.addHandler(handler)
    return handler


class AuditLog:
    """Журнал аудита (только добавление)"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def record(
        self,
        auction_id: Optional[int],
        user_id: Optional[int],
        action: str,
        details: Optional[dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None
    ) -> None:
        """Записать действие в журнал"""
        meta = meta or RequestMeta()
        details_json = json.dumps(details, ensure_ascii=False, default=str) if details else None

        audit_logger.info(
            f"{action} | Аукцион: {auction_id or 'N/A'} | Пользователь: {user_id or 'N/A'} | "
            f"Детали: {details_json or 'N/A'}"
        )

        try:
            async with self.session_maker() as session:
                session.add(AuctionLog(
                    auction_id=auction_id,
                    user_id=user_id,
                    action=action,
                    details=details_json,
                    ip_address=meta.ip_address,
                    user_agent=meta.user_agent
                ))
                await session.commit()
        except Exception as e:
            logger.error(f"Ошибка записи журнала аудита ({action}, аукцион {auction_id}): {e!r}")


async def get_logs(
    session: AsyncSession,
    auction_id: Optional[int] = None,
    limit: int = 100
) -> list[dict[str, Any]]:
    """Получить записи журнала, новые сначала"""
    query = (
        select(AuctionLog, User.username, Auction.title)
        .outerjoin(User, AuctionLog.user_id == User.id)
        .outerjoin(Auction, AuctionLog.auction_id == Auction.id)
    )
    if auction_id is not None:
        query = query.where(AuctionLog.auction_id == auction_id)
    query = query.order_by(AuctionLog.timestamp.desc(), AuctionLog.id.desc()).limit(limit)

    result = await session.execute(query)
    logs = []
    for entry, username, auction_title in result.all():
        logs.append({
            "id": entry.id,
            "auction_id": entry.auction_id,
            "user_id": entry.user_id,
            "username": username,
            "auction_title": auction_title,
            "action": entry.action,
            "details": json.loads(entry.details) if entry.details else None,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "timestamp": entry.timestamp,
        })
    return logs
