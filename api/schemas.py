"""
Схемы запросов и ответов API

Pydantic-модели для тел запросов и JSON-ответов. Суммы - целые вон.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from database.models.auction import Auction
from services.auction import AuctionDetail, AuctionSummary, BidView
from services.bidding import BidResult
from services.timeutils import as_utc


class CreateAuctionRequest(BaseModel):
    """Новый аукцион"""
    title: str = Field(..., description="Название лота")
    description: Optional[str] = Field(None, description="Описание лота")
    starting_price: int = Field(..., strict=True, description="Начальная цена, вон")
    duration: Optional[str] = Field(None, description="Длительность: 1h | 6h | 1d | 3d")
    category: Optional[str] = Field(None, description="Категория")
    images: List[str] = Field(default_factory=list, description="URL изображений по порядку")


class PlaceBidRequest(BaseModel):
    amount: int = Field(..., strict=True, description="Сумма ставки, вон")


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class DelayEndRequest(BaseModel):
    minutes: int = Field(..., strict=True, description="Через сколько минут от текущего момента завершить")


class SetHotRequest(BaseModel):
    is_hot: bool


class MessageResponse(BaseModel):
    message: str


class CreatedAuctionResponse(MessageResponse):
    auction_id: int


class AuctionOut(BaseModel):
    """Аукцион в списках"""
    id: int
    title: str
    description: Optional[str] = None
    starting_price: int
    current_price: int
    status: str
    category: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    seller_id: int
    seller_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: int
    is_hot: bool
    bid_count: int = 0
    participant_count: int = 0
    winner_id: Optional[int] = None
    final_price: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: AuctionSummary) -> "AuctionOut":
        auction = summary.auction
        images = auction.image_list
        return cls(
            id=auction.id,
            title=auction.title,
            description=auction.description,
            starting_price=auction.starting_price,
            current_price=auction.current_price,
            status=auction.status,
            category=auction.category,
            images=images,
            image_url=images[0] if images else None,
            seller_id=auction.seller_id,
            seller_name=summary.seller_name,
            start_time=as_utc(auction.start_time),
            end_time=as_utc(auction.end_time),
            duration_minutes=auction.duration_minutes,
            is_hot=auction.is_hot,
            bid_count=summary.bid_count,
            participant_count=summary.participant_count,
            winner_id=auction.winner_id,
            final_price=auction.final_price,
            created_at=as_utc(auction.created_at),
        )


class BidOut(BaseModel):
    id: int
    bidder_id: int
    bidder_name: Optional[str] = None
    amount: int
    created_at: datetime

    @classmethod
    def from_view(cls, view: BidView) -> "BidOut":
        return cls(
            id=view.bid.id,
            bidder_id=view.bid.bidder_id,
            bidder_name=view.bidder_name,
            amount=view.bid.amount,
            created_at=as_utc(view.bid.created_at),
        )


class AuctionDetailOut(AuctionOut):
    """Аукцион с историей ставок"""
    bids: List[BidOut] = Field(default_factory=list)

    @classmethod
    def from_detail(cls, detail: AuctionDetail) -> "AuctionDetailOut":
        base = AuctionOut.from_summary(detail.summary)
        return cls(**base.model_dump(), bids=[BidOut.from_view(view) for view in detail.bids])


class BidResultOut(MessageResponse):
    bid_id: int
    current_price: int
    bid_count: int
    participant_count: int
    created_at: datetime

    @classmethod
    def from_result(cls, result: BidResult) -> "BidResultOut":
        return cls(
            message="Ставка принята",
            bid_id=result.bid_id,
            current_price=result.current_price,
            bid_count=result.bid_count,
            participant_count=result.participant_count,
            created_at=result.created_at,
        )


class AuctionStateOut(MessageResponse):
    """Результат перехода статуса"""
    auction_id: int
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_hot: bool = False
    winner_id: Optional[int] = None
    final_price: Optional[int] = None

    @classmethod
    def from_auction(cls, auction: Auction, message: str) -> "AuctionStateOut":
        return cls(
            message=message,
            auction_id=auction.id,
            status=auction.status,
            start_time=as_utc(auction.start_time),
            end_time=as_utc(auction.end_time),
            is_hot=auction.is_hot,
            winner_id=auction.winner_id,
            final_price=auction.final_price,
        )


class LogEntryOut(BaseModel):
    id: int
    auction_id: Optional[int] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    auction_title: Optional[str] = None
    action: str
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime


class LogsResponse(BaseModel):
    logs: List[LogEntryOut]
    total: int


class UserStatsOut(BaseModel):
    sales: int
    bids: int
    wins: int
