"""Модель аукциона"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Boolean, String, Text, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
import json
from database.connection import Base, BigIntId


class AuctionStatus(str, enum.Enum):
    """Статус аукциона"""
    PENDING = "pending"  # Ожидает одобрения администратора
    ACTIVE = "active"  # Активный
    ENDED = "ended"  # Завершен
    REJECTED = "rejected"  # Отклонен


class Auction(Base):
    """Модель аукциона"""
    __tablename__ = "auctions"
    __table_args__ = (
        # Не больше одного "горячего" аукциона на всю систему
        Index(
            "uq_auctions_single_hot",
            "is_hot",
            unique=True,
            postgresql_where=text("is_hot"),
            sqlite_where=text("is_hot = 1"),
        ),
    )

    id = Column(BigIntId, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    starting_price = Column(BigInteger, nullable=False)  # Начальная цена, вон
    current_price = Column(BigInteger, nullable=False)  # Текущая цена, вон
    seller_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(100), nullable=True)
    images = Column(Text, nullable=True)  # JSON массив URL изображений
    status = Column(String(50), default=AuctionStatus.PENDING.value, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=False)
    is_hot = Column(Boolean, default=False, nullable=False)
    # Победитель фиксируется один раз, в момент завершения
    winner_id = Column(BigInteger, ForeignKey("users.id"), nullable=True, index=True)
    winning_bid_id = Column(BigInteger, nullable=True)
    final_price = Column(BigInteger, nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Связи
    seller = relationship("User", foreign_keys=[seller_id])
    winner = relationship("User", foreign_keys=[winner_id])
    bids = relationship("Bid", back_populates="auction", order_by="Bid.amount.desc()")

    @property
    def image_list(self) -> list[str]:
        """Список изображений в исходном порядке"""
        if not self.images:
            return []
        return json.loads(self.images)
