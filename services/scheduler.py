"""Планировщик задач для завершения аукционов"""
import asyncio
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy import select
from database.locks import AuctionLocks, auction_locks
from database.models.auction import Auction, AuctionStatus
from services.audit import AuditLog
from services.lifecycle import expire_auction
from services.notifications import NotificationDispatcher
from services.timeutils import utcnow
from config import settings
import logging

logger = logging.getLogger(__name__)


async def close_expired_auctions(
    session_maker: async_sessionmaker,
    *,
    notifications: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditLog] = None,
    now: Optional[datetime] = None,
    locks: AuctionLocks = auction_locks
) -> int:
    """Проверить и завершить истекшие аукционы. Возвращает количество завершенных"""
    now = now or utcnow()

    async with session_maker() as session:
        result = await session.execute(
            select(Auction.id).where(
                Auction.status == AuctionStatus.ACTIVE.value,
                Auction.end_time <= now
            ).order_by(Auction.end_time.asc())
        )
        expired_ids = list(result.scalars().all())

    if not expired_ids:
        logger.debug("Нет истекших аукционов")
        return 0

    logger.info(f"Найдено истекших аукционов: {len(expired_ids)}")
    closed = 0

    for auction_id in expired_ids:
        # Каждый аукцион в своей сессии: ошибка одного не мешает остальным
        try:
            async with session_maker() as session:
                auction = await expire_auction(
                    session,
                    auction_id,
                    notifications=notifications,
                    audit=audit,
                    now=now,
                    locks=locks
                )
            if auction is not None:
                closed += 1
        except Exception as e:
            logger.error(f"Ошибка при завершении аукциона {auction_id}: {e!r}")

    logger.info(f"Завершено аукционов: {closed} из {len(expired_ids)}")
    return closed


class AuctionScheduler:
    """Периодическое завершение истекших аукционов

    Одна задача asyncio на процесс: start() при запуске, stop() при остановке.
    Если предыдущая проверка еще идет, очередной тик пропускается.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        *,
        notifications: Optional[NotificationDispatcher] = None,
        audit: Optional[AuditLog] = None,
        interval: Optional[float] = None,
        locks: AuctionLocks = auction_locks
    ):
        self.session_maker = session_maker
        self.notifications = notifications
        self.audit = audit
        self.interval = settings.SCHEDULER_INTERVAL_SECONDS if interval is None else interval
        self.locks = locks
        self._sweep_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: Optional[datetime] = None) -> Optional[int]:
        """Одна проверка. None - если предыдущая проверка еще не закончилась"""
        if self._sweep_lock.locked():
            logger.warning("Предыдущая проверка аукционов еще идет, тик пропущен")
            return None

        async with self._sweep_lock:
            return await close_expired_auctions(
                self.session_maker,
                notifications=self.notifications,
                audit=self.audit,
                now=now,
                locks=self.locks
            )

    async def _tick(self) -> None:
        try:
            await self.sweep()
        except Exception as e:
            logger.error(f"Ошибка в планировщике: {e!r}")

    async def _loop(self) -> None:
        """Основной цикл планировщика"""
        while True:
            # Тик запускается отдельной задачей, чтобы долгая проверка
            # не сдвигала расписание; перекрытие отсекает _sweep_lock
            tick = asyncio.create_task(self._tick())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """Запустить планировщик"""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Планировщик аукционов запущен (интервал {self.interval} с)")

    async def stop(self) -> None:
        """Остановить планировщик и дождаться текущей проверки"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        # Текущая проверка доводится до конца
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)
        logger.info("Планировщик аукционов остановлен")
