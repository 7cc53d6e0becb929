"""Приложение FastAPI"""
from contextlib import asynccontextmanager
from typing import Optional
import logging
from aiogram import Bot
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from config import settings
from database.connection import create_tables
from services.audit import AuditLog
from services.auth import Authenticator, DatabaseTokenAuthenticator
from services.errors import AuctionError
from services.notifications import LoggingNotifier, NotificationDispatcher, Notifier, TelegramNotifier
from services.scheduler import AuctionScheduler

logger = logging.getLogger(__name__)


async def auction_error_handler(request: Request, exc: AuctionError) -> JSONResponse:
    """Ошибки ядра -> JSON с кодом ответа"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    session_maker: async_sessionmaker,
    *,
    engine: Optional[AsyncEngine] = None,
    notifier: Optional[Notifier] = None,
    authenticator: Optional[Authenticator] = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """Собрать приложение

    engine - если передан, таблицы создаются при запуске, а соединения
    закрываются при остановке.
    """
    bot: Optional[Bot] = None
    if notifier is None:
        if settings.BOT_TOKEN:
            bot = Bot(token=settings.BOT_TOKEN)
            notifier = TelegramNotifier(bot)
        else:
            logger.warning("BOT_TOKEN не задан, уведомления будут только в логе")
            notifier = LoggingNotifier()

    notifications = NotificationDispatcher(notifier)
    audit = AuditLog(session_maker)
    scheduler = AuctionScheduler(session_maker, notifications=notifications, audit=audit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            await create_tables(engine)
        if run_scheduler:
            # Запускаем планировщик для завершения аукционов
            scheduler.start()
        logger.info("Сервер аукционов запущен")
        try:
            yield
        finally:
            await scheduler.stop()
            await notifications.drain()
            if bot is not None:
                await bot.session.close()
            if engine is not None:
                await engine.dispose()
            logger.info("Сервер аукционов остановлен")

    app = FastAPI(title="School Auction API", lifespan=lifespan)
    app.state.session_maker = session_maker
    app.state.notifications = notifications
    app.state.audit = audit
    app.state.authenticator = authenticator or DatabaseTokenAuthenticator()
    app.state.scheduler = scheduler

    app.add_exception_handler(AuctionError, auction_error_handler)

    # Регистрируем роутеры
    from api.routes import admin, auctions, users
    app.include_router(auctions.router)
    app.include_router(admin.router)
    app.include_router(users.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "message": "School Auction API is running"}

    return app
