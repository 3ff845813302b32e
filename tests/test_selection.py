from __future__ import annotations

import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

from tierlotto.errors import (
    AllWinnersDrawn,
    PoolStateCorrupted,
    RoundNotClosed,
    RoundNotFound,
    TicketOwnerMissing,
    WinnerSelectionExhausted,
)
from tierlotto.models import Base, RoundStatus, TicketOwner, WinnerPool, WinningTicket
from tierlotto.rounds import (
    FixedSeedSource,
    RoundLifecycleManager,
    WinnerSelectionEngine,
)
from tierlotto.workflows import round_summary

T0 = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _closed_round(session, purchases, ticket_price=10):
    """Create a round, record ``(owner, amount)`` purchases and close it."""

    manager = RoundLifecycleManager(session)
    lottery_round = manager.create_round(ticket_price, now=T0)
    for owner, amount in purchases:
        manager.record_purchase(owner, amount, now=T0)
    manager.close_round(now=T0)
    return lottery_round


class SelectionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()


class DrawPreconditionTests(SelectionTestCase):
    def test_unknown_round(self) -> None:
        with self.Session.begin() as session:
            with self.assertRaises(RoundNotFound):
                WinnerSelectionEngine(session).draw(42, 0)

    def test_active_round_cannot_be_drawn(self) -> None:
        with self.Session.begin() as session:
            manager = RoundLifecycleManager(session)
            lottery_round = manager.create_round(10)
            manager.record_purchase("amy", 100)
            with self.assertRaises(RoundNotClosed):
                WinnerSelectionEngine(session).draw(lottery_round.id, 0)

    def test_seed_is_not_consumed_when_draw_is_rejected(self) -> None:
        source = FixedSeedSource([5])
        with self.Session.begin() as session:
            manager = RoundLifecycleManager(session)
            lottery_round = manager.create_round(10)
            engine = WinnerSelectionEngine(session, seed_source=source)
            with self.assertRaises(RoundNotClosed):
                engine.draw(lottery_round.id)
        self.assertEqual(source.remaining, 1)

    def test_completed_round_is_no_longer_closed(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            engine = WinnerSelectionEngine(session)
            for _ in range(4):
                engine.draw(lottery_round.id, 0, now=T0)
            self.assertEqual(lottery_round.status, RoundStatus.COMPLETE)
            with self.assertRaises(RoundNotClosed):
                engine.draw(lottery_round.id, 0)

    def test_closed_round_with_finished_cursor(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            lottery_round.current_winner_pool = WinnerPool.COMPLETE.value
            session.flush()
            with self.assertRaises(AllWinnersDrawn):
                WinnerSelectionEngine(session).draw(lottery_round.id, 0)

    def test_invalid_seed_is_rejected(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            engine = WinnerSelectionEngine(session)
            with self.assertRaises(ValueError):
                engine.draw(lottery_round.id, -1)
            with self.assertRaises(ValueError):
                engine.draw(lottery_round.id, 2**64)


class DrawSequenceTests(SelectionTestCase):
    def test_seed_zero_picks_lowest_unused_ticket(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 500), ("ben", 500)])
            engine = WinnerSelectionEngine(session)
            tickets = [engine.draw(lottery_round.id, 0, now=T0).ticket_number for _ in range(5)]
            self.assertEqual(tickets, [1, 2, 3, 4, 5])

    def test_collision_moves_to_next_ticket(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 100)])
            engine = WinnerSelectionEngine(session)
            first = engine.draw(lottery_round.id, 6, now=T0)
            second = engine.draw(lottery_round.id, 6, now=T0)
            # seed 6 on 10 tickets lands on 7, then 8 after the collision
            self.assertEqual((first.ticket_number, second.ticket_number), (7, 8))

    def test_full_round_prizes_and_successor(self) -> None:
        purchases = [(f"player-{i}", 100) for i in range(10)]
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, purchases)
            round_id = lottery_round.id
            self.assertEqual(lottery_round.total_winners, 30)

            engine = WinnerSelectionEngine(session)
            draws = [engine.draw(round_id, seed, now=T0) for seed in range(1000, 1030)]

            self.assertEqual(len({d.ticket_number for d in draws}), 30)
            self.assertTrue(all(1 <= d.ticket_number <= 100 for d in draws))

            prizes = [d.prize_amount for d in draws]
            self.assertEqual(prizes[:15], [13] * 15)
            self.assertEqual(prizes[15:22], [35] * 7)
            self.assertEqual(prizes[22:27], [60] * 5)
            self.assertEqual(prizes[27:], [83] * 3)
            self.assertLessEqual(sum(prizes), lottery_round.prize_pool)

            self.assertEqual([d.new_round_created for d in draws], [False] * 29 + [True])
            self.assertEqual(lottery_round.status, RoundStatus.COMPLETE)
            self.assertIs(lottery_round.winner_pool, WinnerPool.COMPLETE)
            self.assertEqual(lottery_round.total_winners_drawn, 30)

            manager = RoundLifecycleManager(session)
            successor = manager.active_round()
            assert successor is not None
            self.assertEqual(successor.id, round_id + 1)
            self.assertEqual(successor.ticket_price, 10)
            self.assertEqual(successor.total_tickets_sold, 0)

            with self.assertRaises(RoundNotClosed):
                engine.draw(round_id, 0)
            self.assertEqual(manager.active_round_id(), round_id + 1)

    def test_winners_resolve_to_ticket_owners(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 20), ("ben", 30)])
            engine = WinnerSelectionEngine(session)
            owners = {}
            for _ in range(4):
                draw = engine.draw(lottery_round.id, 0, now=T0)
                owners[draw.ticket_number] = draw.owner
            self.assertEqual(owners, {1: "amy", 2: "amy", 3: "ben", 4: "ben"})

    def test_small_round_draws_one_winner_per_pool(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            engine = WinnerSelectionEngine(session)
            draws = [engine.draw(lottery_round.id, 0, now=T0) for _ in range(4)]
            # prize pool 40: 8, 10, 12, 10
            self.assertEqual([d.prize_amount for d in draws], [8, 10, 12, 10])
            self.assertTrue(draws[-1].new_round_created)

            winners = session.query(WinningTicket).order_by(WinningTicket.draw_sequence).all()
            self.assertEqual(
                [w.winner_pool for w in winners], ["pool1", "pool2", "pool3", "pool4"]
            )
            self.assertTrue(all(w.claimed for w in winners))

    def test_no_successor_when_a_round_is_already_active(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            manager = RoundLifecycleManager(session)
            manual = manager.create_round(99, now=T0)

            engine = WinnerSelectionEngine(session)
            draws = [engine.draw(lottery_round.id, 0, now=T0) for _ in range(4)]
            self.assertFalse(draws[-1].new_round_created)
            self.assertEqual(manager.active_round_id(), manual.id)
            self.assertEqual(lottery_round.status, RoundStatus.COMPLETE)

    def test_seed_source_supplies_missing_seeds(self) -> None:
        source = FixedSeedSource([3, 3])
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 100)])
            engine = WinnerSelectionEngine(session, seed_source=source)
            first = engine.draw(lottery_round.id, now=T0)
            second = engine.draw(lottery_round.id, now=T0)
            self.assertEqual((first.ticket_number, second.ticket_number), (4, 5))
        self.assertEqual(source.remaining, 0)


class DeterminismTests(unittest.TestCase):
    def _run(self) -> dict:
        engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(engine)
        Session = sessionmaker(bind=engine, future=True, expire_on_commit=False)
        try:
            with Session.begin() as session:
                lottery_round = _closed_round(
                    session, [("amy", 130), ("ben", 75), ("cy", 255), ("dee", 40)]
                )
                selection = WinnerSelectionEngine(
                    session,
                    seed_source=FixedSeedSource(
                        [7, 99, 12345, 2**64 - 1, 0, 31, 8, 8, 48, 3, 77, 5, 1]
                    ),
                )
                while lottery_round.status != RoundStatus.COMPLETE:
                    selection.draw(lottery_round.id, now=T0)
                return round_summary(session, lottery_round.id)
        finally:
            engine.dispose()

    def test_same_inputs_produce_identical_ledgers(self) -> None:
        first = self._run()
        second = self._run()
        self.assertEqual(first, second)
        # 49 tickets: pools of 7, 3, 2 and 1 winners
        self.assertEqual(len(first["winners"]), 13)


class LedgerInconsistencyTests(SelectionTestCase):
    def test_missing_ticket_owner(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            session.execute(
                delete(TicketOwner).where(
                    TicketOwner.round_id == lottery_round.id,
                    TicketOwner.ticket_number == 1,
                )
            )
            with self.assertRaises(TicketOwnerMissing):
                WinnerSelectionEngine(session).draw(lottery_round.id, 0)

    def test_cursor_on_full_pool(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            lottery_round.pool1_winners_drawn = lottery_round.pool1_count
            session.flush()
            with self.assertRaises(PoolStateCorrupted):
                WinnerSelectionEngine(session).draw(lottery_round.id, 0)

    def test_every_ticket_already_won(self) -> None:
        with self.Session.begin() as session:
            lottery_round = _closed_round(session, [("amy", 40)])
            for number in range(1, 5):
                session.add(
                    WinningTicket(
                        round_id=lottery_round.id,
                        ticket_number=number,
                        owner="amy",
                        prize_amount=0,
                        winner_pool="pool1",
                        draw_sequence=number,
                        drawn_at=T0,
                    )
                )
            session.flush()
            with self.assertRaises(WinnerSelectionExhausted) as ctx:
                WinnerSelectionEngine(session).draw(lottery_round.id, 0)
            self.assertEqual(ctx.exception.attempts, 8)


if __name__ == "__main__":
    unittest.main()
