"""Модели базы данных"""
from .user import User
from .auction import Auction, AuctionStatus
from .bid import Bid
from .auction_log import AuctionLog

__all__ = [
    "User",
    "Auction",
    "AuctionStatus",
    "Bid",
    "AuctionLog",
]
