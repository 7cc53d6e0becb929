import unittest
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database.connection import create_tables
from database.models import Auction, Bid
from services.audit import AuditLog
from services.auction import create_auction
from services.context import AuthContext, ROLE_ADMIN
from services.lifecycle import approve_auction
from services.notifications import NotificationDispatcher, Recipient
from services.user import create_user

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Уведомления записываются в список; методы из `failing` падают"""

    def __init__(self, failing: Optional[set[str]] = None):
        self.calls: list[tuple] = []
        self.failing = failing or set()

    async def _record(self, name: str, *args) -> None:
        if name in self.failing:
            raise ConnectionError(f"{name}: delivery service down")
        self.calls.append((name, *args))

    async def notify_win(self, recipient: Recipient, auction_title: str, amount: int, auction_id: int) -> None:
        await self._record("win", recipient.user_id, auction_title, amount, auction_id)

    async def notify_approval(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        await self._record("approval", recipient.user_id, auction_title, auction_id)

    async def notify_hot(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        await self._record("hot", recipient.user_id, auction_title, auction_id)

    async def notify_auction_ended(self, recipient: Recipient, auction_title: str, final_price, auction_id: int) -> None:
        await self._record("ended", recipient.user_id, auction_title, final_price, auction_id)

    def named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """SQLite в памяти, пользователи, уведомления и журнал аудита"""

    async def asyncSetUp(self) -> None:
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        await create_tables(self.engine)
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.notifier = RecordingNotifier()
        self.notifications = NotificationDispatcher(self.notifier)
        self.audit = AuditLog(self.session_maker)

        self.seller = await self.create_user("seller")
        self.alice = await self.create_user("alice")
        self.bob = await self.create_user("bob")
        self.admin = await self.create_user("admin", is_admin=True)

    async def asyncTearDown(self) -> None:
        await self.notifications.drain()
        await self.engine.dispose()

    async def create_user(self, username: str, is_admin: bool = False) -> AuthContext:
        async with self.session_maker() as session:
            user = await create_user(
                session,
                username=username,
                email=f"{username}@school.test",
                is_admin=is_admin,
                api_token=f"token-{username}",
            )
        return AuthContext(user_id=user.id, role=ROLE_ADMIN if is_admin else "user")

    async def create_pending(self, starting_price: int = 10000, duration: str = "1h", title: str = "Calculator") -> int:
        async with self.session_maker() as session:
            auction = await create_auction(
                session,
                self.seller,
                title=title,
                starting_price=starting_price,
                duration=duration,
                category="electronics",
                images=["https://img.test/1.jpg", "https://img.test/2.jpg"],
            )
        return auction.id

    async def create_active(self, starting_price: int = 10000, duration: str = "1h", approved_at: datetime = T0, title: str = "Calculator") -> int:
        auction_id = await self.create_pending(starting_price, duration, title)
        async with self.session_maker() as session:
            await approve_auction(session, auction_id, self.admin, now=approved_at)
        return auction_id

    async def load_auction(self, auction_id: int) -> Auction:
        async with self.session_maker() as session:
            return await session.get(Auction, auction_id)

    async def load_bids(self, auction_id: int) -> list[Bid]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Bid).where(Bid.auction_id == auction_id).order_by(Bid.id)
            )
            return list(result.scalars().all())


def minutes(n: float) -> timedelta:
    return timedelta(minutes=n)
