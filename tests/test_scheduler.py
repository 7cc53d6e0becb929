import asyncio
import unittest
from unittest.mock import patch

from database.models import AuctionStatus
from services import lifecycle
from services.bidding import place_bid
from services.errors import InvalidState
from services.scheduler import AuctionScheduler, close_expired_auctions
from services.notifications import NotificationDispatcher
from tests.support import DatabaseTestCase, RecordingNotifier, T0, minutes


class BrokenSessionMaker:
    def __call__(self):
        raise ConnectionError("store is unreachable")


class CloseExpiredAuctionsTestCase(DatabaseTestCase):
    async def test_nothing_to_close(self):
        await self.create_active()
        await self.create_pending()

        closed = await close_expired_auctions(self.session_maker, now=T0 + minutes(30))

        self.assertEqual(0, closed)

    async def test_closes_every_expired_auction(self):
        short = await self.create_active(duration="1h", title="Pencil case")
        long = await self.create_active(duration="1d", title="Backpack")
        other = await self.create_active(duration="6h", title="Globe", approved_at=T0 - minutes(400))
        async with self.session_maker() as session:
            await place_bid(session, short, self.alice, 30000, now=T0 + minutes(10))

        closed = await close_expired_auctions(
            self.session_maker, notifications=self.notifications, audit=self.audit, now=T0 + minutes(60)
        )
        await self.notifications.drain()

        self.assertEqual(2, closed)
        self.assertEqual(AuctionStatus.ENDED.value, (await self.load_auction(short)).status)
        self.assertEqual(AuctionStatus.ENDED.value, (await self.load_auction(other)).status)
        self.assertEqual(AuctionStatus.ACTIVE.value, (await self.load_auction(long)).status)
        self.assertEqual([("win", self.alice.user_id, "Pencil case", 30000, short)], self.notifier.named("win"))
        self.assertEqual(2, len(self.notifier.named("ended")))

        # повторный проход ничего не меняет
        self.assertEqual(0, await close_expired_auctions(self.session_maker, now=T0 + minutes(61)))

    async def test_notification_failure_does_not_block_closing(self):
        notifier = RecordingNotifier(failing={"win"})
        notifications = NotificationDispatcher(notifier)
        first = await self.create_active()
        second = await self.create_active()
        for auction_id in (first, second):
            async with self.session_maker() as session:
                await place_bid(session, auction_id, self.bob, 50000, now=T0 + minutes(1))

        with self.assertLogs("services.notifications", level="ERROR"):
            closed = await close_expired_auctions(self.session_maker, notifications=notifications, now=T0 + minutes(90))
            await notifications.drain()

        self.assertEqual(2, closed)
        for auction_id in (first, second):
            auction = await self.load_auction(auction_id)
            self.assertEqual(AuctionStatus.ENDED.value, auction.status)
            self.assertEqual(self.bob.user_id, auction.winner_id)
        self.assertEqual([], notifier.named("win"))
        self.assertEqual(2, len(notifier.named("ended")))

    async def test_error_on_one_auction_does_not_stop_the_sweep(self):
        broken = await self.create_active(title="Broken")
        fine = await self.create_active(title="Fine")
        real_expire = lifecycle.expire_auction

        async def flaky_expire(session, auction_id, **kwargs):
            if auction_id == broken:
                raise RuntimeError("database hiccup")
            return await real_expire(session, auction_id, **kwargs)

        with patch("services.scheduler.expire_auction", new=flaky_expire):
            with self.assertLogs("services.scheduler", level="ERROR") as logs:
                closed = await close_expired_auctions(self.session_maker, now=T0 + minutes(61))

        self.assertEqual(1, closed)
        self.assertEqual(AuctionStatus.ACTIVE.value, (await self.load_auction(broken)).status)
        self.assertEqual(AuctionStatus.ENDED.value, (await self.load_auction(fine)).status)
        self.assertTrue(any("database hiccup" in line for line in logs.output))

        # следующий проход подбирает пропущенный аукцион
        self.assertEqual(1, await close_expired_auctions(self.session_maker, now=T0 + minutes(62)))
        self.assertEqual(AuctionStatus.ENDED.value, (await self.load_auction(broken)).status)

    async def test_hour_long_auction_closes_with_winner(self):
        auction_id = await self.create_active(starting_price=10000, duration="1h")
        async with self.session_maker() as session:
            await place_bid(session, auction_id, self.alice, 11000, now=T0 + minutes(1))
        async with self.session_maker() as session:
            with self.assertRaises(InvalidState) as ctx:
                await place_bid(session, auction_id, self.bob, 10500, now=T0 + minutes(2))
        self.assertIn("11,000", ctx.exception.message)

        self.assertEqual(1, await close_expired_auctions(self.session_maker, now=T0 + minutes(61)))

        auction = await self.load_auction(auction_id)
        self.assertEqual(AuctionStatus.ENDED.value, auction.status)
        self.assertEqual(self.alice.user_id, auction.winner_id)
        self.assertEqual(11000, auction.final_price)

    async def test_delayed_auction_is_not_closed(self):
        auction_id = await self.create_active()
        async with self.session_maker() as session:
            await lifecycle.delay_auction_end(session, auction_id, self.admin, 30, now=T0 + minutes(55))

        self.assertEqual(0, await close_expired_auctions(self.session_maker, now=T0 + minutes(61)))
        self.assertEqual(1, await close_expired_auctions(self.session_maker, now=T0 + minutes(85)))


class AuctionSchedulerTestCase(DatabaseTestCase):
    async def test_overlapping_sweep_is_skipped(self):
        auction_id = await self.create_active()
        scheduler = AuctionScheduler(self.session_maker, interval=60)

        async with scheduler._sweep_lock:
            self.assertIsNone(await scheduler.sweep(now=T0 + minutes(61)))
        self.assertEqual(AuctionStatus.ACTIVE.value, (await self.load_auction(auction_id)).status)

        self.assertEqual(1, await scheduler.sweep(now=T0 + minutes(61)))

    async def test_start_and_stop(self):
        # аукцион одобрен в прошлом, к текущему времени он уже истек
        auction_id = await self.create_active()
        scheduler = AuctionScheduler(self.session_maker, notifications=self.notifications, interval=0.01)

        scheduler.start()
        scheduler.start()
        self.assertTrue(scheduler.running)

        for _ in range(500):
            if self.notifier.named("ended"):
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        self.assertFalse(scheduler.running)
        self.assertEqual(AuctionStatus.ENDED.value, (await self.load_auction(auction_id)).status)
        await self.notifications.drain()
        self.assertEqual(1, len(self.notifier.named("ended")))

    async def test_failing_tick_does_not_stop_the_loop(self):
        scheduler = AuctionScheduler(BrokenSessionMaker(), interval=0.01)

        with self.assertLogs("services.scheduler", level="ERROR") as logs:
            scheduler.start()
            await asyncio.sleep(0.1)
            self.assertTrue(scheduler.running)
            await scheduler.stop()

        failures = [line for line in logs.output if "store is unreachable" in line]
        self.assertGreaterEqual(len(failures), 2)
        self.assertFalse(scheduler.running)

    async def test_stop_without_start(self):
        scheduler = AuctionScheduler(self.session_maker, interval=0.01)
        await scheduler.stop()
        self.assertFalse(scheduler.running)


if __name__ == "__main__":
    unittest.main()
