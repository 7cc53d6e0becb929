"""Зависимости FastAPI: сессия БД, контекст авторизации, данные запроса"""
from typing import AsyncIterator
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from services.audit import AuditLog
from services.context import AuthContext, RequestMeta
from services.notifications import NotificationDispatcher


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Сессия БД на время запроса"""
    async with request.app.state.session_maker() as session:
        yield session


async def get_auth_context(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AuthContext:
    """Пользователь по заголовку Authorization: Bearer <token>"""
    header = request.headers.get("Authorization", "")
    token = header[len("Bearer "):].strip() if header.startswith("Bearer ") else None
    return await request.app.state.authenticator.verify_and_identify(session, token)


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent")
    )


def get_notifications(request: Request) -> NotificationDispatcher:
    return request.app.state.notifications


def get_audit(request: Request) -> AuditLog:
    return request.app.state.audit
