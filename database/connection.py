"""Подключение к базе данных"""
from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from config import settings

# Создаем движок для асинхронной работы
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True
)

# Создаем фабрику сессий
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Базовый класс для моделей
Base = declarative_base()

# BIGINT в PostgreSQL; в SQLite автоинкремент работает только для INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Создать таблицы, если их еще нет"""
    # Импорт регистрирует модели в Base.metadata
    import database.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
