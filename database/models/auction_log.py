"""Модель журнала действий с аукционами"""
from sqlalchemy import Column, BigInteger, String, DateTime, Text
from sqlalchemy.sql import func
from database.connection import Base, BigIntId


class AuctionLog(Base):
    """Запись журнала аудита (только добавление)"""
    __tablename__ = "auction_logs"

    id = Column(BigIntId, primary_key=True, index=True)
    auction_id = Column(BigInteger, nullable=True, index=True)
    user_id = Column(BigInteger, nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    details = Column(Text, nullable=True)  # JSON
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
