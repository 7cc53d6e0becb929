import asyncio
import unittest

from database.locks import AuctionLocks
from database.models import AuctionStatus
from services.audit import get_logs
from services.auction import MAX_AMOUNT
from services.bidding import place_bid
from services.context import AuthContext
from services.errors import InvalidInput, InvalidState, NotFound, RequestTimeout, Unauthorized
from services.lifecycle import reject_auction
from tests.support import DatabaseTestCase, T0, minutes


class PlaceBidTestCase(DatabaseTestCase):
    async def bid(self, auction_id: int, actor: AuthContext, amount: int, at=None, **kwargs):
        async with self.session_maker() as session:
            return await place_bid(
                session, auction_id, actor, amount, now=at or T0 + minutes(1), audit=self.audit, **kwargs
            )

    async def test_accepted_bid_updates_price_atomically(self):
        auction_id = await self.create_active(starting_price=10000)

        result = await self.bid(auction_id, self.alice, 11000)

        self.assertEqual(11000, result.current_price)
        self.assertEqual(10000, result.previous_price)
        self.assertEqual(1, result.bid_count)
        self.assertEqual(1, result.participant_count)
        self.assertEqual(T0 + minutes(1), result.created_at)

        auction = await self.load_auction(auction_id)
        self.assertEqual(11000, auction.current_price)
        bids = await self.load_bids(auction_id)
        self.assertEqual([(self.alice.user_id, 11000)], [(b.bidder_id, b.amount) for b in bids])
        self.assertEqual(result.bid_id, bids[0].id)

    async def test_counts_distinct_bidders(self):
        auction_id = await self.create_active(starting_price=10000)
        await self.bid(auction_id, self.alice, 11000)
        await self.bid(auction_id, self.bob, 12000)
        result = await self.bid(auction_id, self.alice, 13000)

        self.assertEqual(3, result.bid_count)
        self.assertEqual(2, result.participant_count)

    async def test_accepted_prices_strictly_increase(self):
        auction_id = await self.create_active(starting_price=1000)
        attempts = [1500, 1200, 1500, 1501, 3000, 2999, 3000, 4000]
        accepted = []
        for i, amount in enumerate(attempts):
            bidder = self.alice if i % 2 else self.bob
            try:
                result = await self.bid(auction_id, bidder, amount)
                accepted.append(result.current_price)
            except InvalidState as e:
                self.assertEqual("price_too_low", e.reason)

        self.assertEqual([1500, 1501, 3000, 4000], accepted)
        bids = await self.load_bids(auction_id)
        amounts = [b.amount for b in bids]
        self.assertEqual(accepted, amounts)
        self.assertEqual(4000, (await self.load_auction(auction_id)).current_price)

    async def test_price_not_higher_is_rejected_with_current_price(self):
        auction_id = await self.create_active(starting_price=10000)
        await self.bid(auction_id, self.alice, 11000)

        for amount in (10500, 11000):
            with self.assertRaises(InvalidState) as ctx:
                await self.bid(auction_id, self.bob, amount, at=T0 + minutes(2))
            self.assertEqual("price_too_low", ctx.exception.reason)
            self.assertEqual(11000, ctx.exception.current_price)
            self.assertEqual(400, ctx.exception.status_code)

        self.assertEqual(1, len(await self.load_bids(auction_id)))

    async def test_amount_equal_to_starting_price_is_rejected(self):
        auction_id = await self.create_active(starting_price=10000)
        with self.assertRaises(InvalidState):
            await self.bid(auction_id, self.alice, 10000)

    async def test_seller_cannot_bid_on_own_auction(self):
        auction_id = await self.create_active()
        with self.assertRaises(InvalidState) as ctx:
            await self.bid(auction_id, self.seller, 50000)
        self.assertEqual("self_bid", ctx.exception.reason)
        self.assertEqual([], await self.load_bids(auction_id))

    async def test_no_bids_in_last_minute(self):
        auction_id = await self.create_active(duration="1h")
        end_time = T0 + minutes(60)

        with self.assertRaises(InvalidState) as ctx:
            await self.bid(auction_id, self.alice, 20000, at=end_time - minutes(0.98))
        self.assertEqual("too_late", ctx.exception.reason)
        self.assertEqual(AuctionStatus.ACTIVE.value, ctx.exception.status)

        with self.assertRaises(InvalidState):
            await self.bid(auction_id, self.alice, 20000, at=end_time - minutes(1))

        result = await self.bid(auction_id, self.alice, 20000, at=end_time - minutes(1.05))
        self.assertEqual(20000, result.current_price)

    async def test_bid_on_pending_auction(self):
        auction_id = await self.create_pending()
        with self.assertRaises(InvalidState) as ctx:
            await self.bid(auction_id, self.alice, 20000)
        self.assertEqual("not_active", ctx.exception.reason)
        self.assertEqual(AuctionStatus.PENDING.value, ctx.exception.status)

    async def test_bid_on_rejected_auction(self):
        auction_id = await self.create_pending()
        async with self.session_maker() as session:
            await reject_auction(session, auction_id, self.admin)

        with self.assertRaises(InvalidState) as ctx:
            await self.bid(auction_id, self.alice, 20000)
        self.assertEqual(AuctionStatus.REJECTED.value, ctx.exception.status)

    async def test_unknown_auction(self):
        with self.assertRaises(NotFound) as ctx:
            await self.bid(9999, self.alice, 20000)
        self.assertEqual(404, ctx.exception.status_code)

    async def test_invalid_amounts(self):
        auction_id = await self.create_active()
        for amount in (0, -5, 12.5, "20000", True, MAX_AMOUNT + 1, 10 ** 20):
            with self.assertRaises(InvalidInput):
                await self.bid(auction_id, self.alice, amount)
        self.assertEqual([], await self.load_bids(auction_id))

        result = await self.bid(auction_id, self.alice, MAX_AMOUNT)
        self.assertEqual(MAX_AMOUNT, (await self.load_auction(auction_id)).current_price)
        self.assertEqual(MAX_AMOUNT, result.current_price)

    async def test_anonymous_bidder(self):
        auction_id = await self.create_active()
        with self.assertRaises(Unauthorized):
            await self.bid(auction_id, AuthContext(user_id=None), 20000)

    async def test_bid_is_audited(self):
        auction_id = await self.create_active(starting_price=10000)
        await self.bid(auction_id, self.alice, 11000)

        async with self.session_maker() as session:
            logs = await get_logs(session, auction_id=auction_id)
        bid_logs = [log for log in logs if log["action"] == "bid_placed"]
        self.assertEqual(1, len(bid_logs))
        self.assertEqual({"amount": 11000, "previous_price": 10000, "new_price": 11000}, bid_logs[0]["details"])
        self.assertEqual(self.alice.user_id, bid_logs[0]["user_id"])


class ConcurrentBidTestCase(DatabaseTestCase):
    async def bid(self, auction_id: int, actor: AuthContext, amount: int):
        async with self.session_maker() as session:
            return await place_bid(session, auction_id, actor, amount, now=T0 + minutes(1))

    async def test_simultaneous_bids_in_increasing_order(self):
        auction_id = await self.create_active(starting_price=1000)

        results = await asyncio.gather(
            self.bid(auction_id, self.alice, 1100),
            self.bid(auction_id, self.bob, 1200),
            return_exceptions=True,
        )

        accepted = [r.current_price for r in results if not isinstance(r, Exception)]
        auction = await self.load_auction(auction_id)
        self.assertEqual(max(accepted), auction.current_price)
        self.assertEqual(1200, auction.current_price)
        self.assertEqual([1100, 1200], [b.amount for b in await self.load_bids(auction_id)])

    async def test_simultaneous_bids_lower_one_loses(self):
        auction_id = await self.create_active(starting_price=1000)

        results = await asyncio.gather(
            self.bid(auction_id, self.bob, 1200),
            self.bid(auction_id, self.alice, 1100),
            return_exceptions=True,
        )

        self.assertEqual(1200, results[0].current_price)
        self.assertIsInstance(results[1], InvalidState)
        self.assertEqual(1200, results[1].current_price)

        auction = await self.load_auction(auction_id)
        self.assertEqual(1200, auction.current_price)
        self.assertEqual([1200], [b.amount for b in await self.load_bids(auction_id)])

    async def test_many_concurrent_bids_keep_price_consistent(self):
        auction_id = await self.create_active(starting_price=1000)
        amounts = [1300, 1100, 1500, 1200, 1400, 1600, 1050]

        results = await asyncio.gather(
            *(self.bid(auction_id, self.alice if i % 2 else self.bob, amount) for i, amount in enumerate(amounts)),
            return_exceptions=True,
        )

        accepted = [r.current_price for r in results if not isinstance(r, Exception)]
        bids = await self.load_bids(auction_id)
        recorded = [b.amount for b in bids]
        self.assertEqual(sorted(recorded), recorded)
        self.assertEqual(len(set(recorded)), len(recorded))
        self.assertEqual(sorted(accepted), recorded)
        self.assertEqual(recorded[-1], (await self.load_auction(auction_id)).current_price)
        self.assertEqual(1600, recorded[-1])

    async def test_timeout_leaves_no_partial_state(self):
        auction_id = await self.create_active(starting_price=1000)
        locks = AuctionLocks()

        async with locks.hold(auction_id):
            async with self.session_maker() as session:
                with self.assertRaises(RequestTimeout):
                    await place_bid(
                        session, auction_id, self.alice, 5000, now=T0 + minutes(1), locks=locks, timeout=0.05
                    )

        auction = await self.load_auction(auction_id)
        self.assertEqual(1000, auction.current_price)
        self.assertEqual([], await self.load_bids(auction_id))
        self.assertEqual(0, len(locks))

        # the bidder can retry once the auction is free
        async with self.session_maker() as session:
            result = await place_bid(session, auction_id, self.alice, 5000, now=T0 + minutes(1), locks=locks)
        self.assertEqual(5000, result.current_price)


if __name__ == "__main__":
    unittest.main()
