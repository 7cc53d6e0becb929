"""Модель ставки"""
from sqlalchemy import Column, BigInteger, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from database.connection import Base, BigIntId


class Bid(Base):
    """Модель ставки на аукционе. После создания не изменяется"""
    __tablename__ = "bids"

    id = Column(BigIntId, primary_key=True, index=True)
    auction_id = Column(BigInteger, ForeignKey("auctions.id"), nullable=False, index=True)
    bidder_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # Сумма ставки, вон
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Связи
    auction = relationship("Auction", back_populates="bids")
    bidder = relationship("User", backref="bids")
