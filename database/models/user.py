"""Модель пользователя"""
from sqlalchemy import Column, BigInteger, String, DateTime, Boolean
from sqlalchemy.sql import func
from database.connection import Base, BigIntId


class User(Base):
    """Модель пользователя (ученик или администратор)"""
    __tablename__ = "users"

    id = Column(BigIntId, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    telegram_id = Column(BigInteger, unique=True, nullable=True, index=True)  # Для push-уведомлений
    api_token = Column(String(255), unique=True, nullable=True, index=True)  # Bearer-токен API
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
