"""Аутентификация и проверка прав"""
from typing import Optional, Protocol
from sqlalchemy.ext.asyncio import AsyncSession
from config import settings
from services.context import AuthContext, ROLE_ADMIN, ROLE_USER
from services.errors import Forbidden, Unauthorized
from services.user import get_user_by_token


class Authenticator(Protocol):
    """Проверка токена. Регистрация и пароли - вне ядра"""

    async def verify_and_identify(self, session: AsyncSession, token: Optional[str]) -> AuthContext:
        ...


class DatabaseTokenAuthenticator:
    """Токен ищется в users.api_token"""

    def __init__(self, admin_ids: Optional[list[int]] = None):
        self.admin_ids = set(settings.admin_ids_list if admin_ids is None else admin_ids)

    async def verify_and_identify(self, session: AsyncSession, token: Optional[str]) -> AuthContext:
        if not token:
            raise Unauthorized("Требуется токен авторизации")

        user = await get_user_by_token(session, token)
        if not user:
            raise Unauthorized("Недействительный токен")

        # Админы из .env считаются админами независимо от БД
        is_admin = user.is_admin or user.id in self.admin_ids
        return AuthContext(user_id=user.id, role=ROLE_ADMIN if is_admin else ROLE_USER)


def require_admin(actor: AuthContext) -> None:
    """Проверить, что действие выполняет администратор"""
    if actor.user_id is None and not actor.is_admin:
        raise Unauthorized("Требуется авторизация")
    if not actor.is_admin:
        raise Forbidden("Требуются права администратора")
