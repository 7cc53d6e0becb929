"""Сервис для работы с пользователями"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.user import User


async def create_user(
    session: AsyncSession,
    username: str,
    email: str,
    telegram_id: Optional[int] = None,
    is_admin: bool = False,
    api_token: Optional[str] = None
) -> User:
    """Создать пользователя"""
    user = User(
        username=username,
        email=email,
        telegram_id=telegram_id,
        is_admin=is_admin,
        api_token=api_token
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def get_user_by_token(session: AsyncSession, token: str) -> Optional[User]:
    """Найти пользователя по API-токену"""
    result = await session.execute(
        select(User).where(User.api_token == token)
    )
    return result.scalar_one_or_none()
