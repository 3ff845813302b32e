import json
import unittest
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tierlotto.errors import NoActiveRound, RoundNotFound, Unauthorized
from tierlotto.escrow.api import EscrowClient
from tierlotto.models import Base
from tierlotto.rounds import FixedSeedSource
from tierlotto.workflows import (
    ENGINE_CALLER,
    active_round_id,
    buy_tickets,
    close_round,
    create_round,
    distribute_prize,
    draw_winner_and_pay,
    generate_winner,
    get_round,
    link_controller,
    list_rounds,
    record_ticket_purchase,
    round_summary,
    round_ticket_purchases,
    round_winners,
)

CONTROLLER = "0f" * 32
T0 = datetime(2026, 7, 1, 9, 30, tzinfo=timezone.utc)
SUCCESS = {"status": "success", "message": "ok"}


class DummyEscrow(EscrowClient):
    def __init__(self, collect_response=SUCCESS, payout_response=SUCCESS):
        self.collect_response = collect_response
        self.payout_response = payout_response
        self.collects: list[dict[str, Any]] = []
        self.payouts: list[dict[str, Any]] = []

    def collect(self, owner: str, amount: int, reference: Optional[str] = None) -> dict:
        self.collects.append({"owner": owner, "amount": amount, "reference": reference})
        return self.collect_response

    def pay_out(
        self, recipient: str, amount: int, reference: Optional[str] = None
    ) -> dict:
        self.payouts.append(
            {"recipient": recipient, "amount": amount, "reference": reference}
        )
        return self.payout_response


class WorkflowTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()


class BuyTicketsWorkflowTestCase(WorkflowTestCase):
    def test_collects_then_records_as_controller(self):
        escrow = DummyEscrow()
        with self.Session.begin() as session:
            link_controller(session, CONTROLLER)
            round_id = create_round(session, 10, now=T0)
            purchase = buy_tickets(session, "alice", 45, escrow, source_id="tx-1", now=T0)

            self.assertEqual(purchase.round_id, round_id)
            self.assertEqual(purchase.total_tickets, 4)
            self.assertEqual(purchase.source_id, "tx-1")

        self.assertEqual(
            escrow.collects, [{"owner": "alice", "amount": 45, "reference": "tx-1"}]
        )
        with self.Session() as session:
            lottery_round = get_round(session, round_id)
            self.assertEqual(lottery_round.prize_pool, 45)

    def test_failed_collect_records_nothing(self):
        escrow = DummyEscrow(collect_response={"status": "error", "message": "no funds"})
        with self.Session.begin() as session:
            round_id = create_round(session, 10, now=T0)
            with self.assertRaises(RuntimeError) as ctx:
                buy_tickets(session, "alice", 50, escrow)
            self.assertIn("no funds", str(ctx.exception))
            self.assertEqual(round_ticket_purchases(session, round_id), [])

    def test_malformed_collect_response(self):
        escrow = DummyEscrow(collect_response=["unexpected"])
        with self.Session.begin() as session:
            create_round(session, 10, now=T0)
            with self.assertRaises(RuntimeError):
                buy_tickets(session, "alice", 50, escrow)

    def test_direct_recording_requires_controller_once_linked(self):
        with self.Session.begin() as session:
            create_round(session, 10, now=T0)
            link_controller(session, CONTROLLER)
            with self.assertRaises(Unauthorized):
                record_ticket_purchase(session, "alice", 10, caller=ENGINE_CALLER)
            purchase = record_ticket_purchase(
                session, "alice", 10, caller=CONTROLLER, now=T0
            )
            self.assertEqual(purchase.first_ticket, 1)

    def test_buy_without_active_round_propagates(self):
        escrow = DummyEscrow()
        with self.Session.begin() as session:
            with self.assertRaises(NoActiveRound):
                buy_tickets(session, "alice", 50, escrow)


class PrizeDistributionTestCase(WorkflowTestCase):
    def test_only_engine_may_distribute(self):
        escrow = DummyEscrow()
        with self.assertRaises(Unauthorized):
            distribute_prize("someone-else", "bob", 10, escrow)
        self.assertEqual(escrow.payouts, [])

    def test_distribute_rejects_non_positive_amount(self):
        escrow = DummyEscrow()
        with self.assertRaises(ValueError):
            distribute_prize(ENGINE_CALLER, "bob", 0, escrow)

    def test_distribute_reports_failure(self):
        escrow = DummyEscrow(payout_response={"status": "error"})
        with self.assertRaises(RuntimeError):
            distribute_prize(ENGINE_CALLER, "bob", 10, escrow, reference="r")

    def test_rejected_payout_is_not_logged_as_paid(self):
        escrow = DummyEscrow(payout_response={"status": "error", "message": "frozen"})
        with self.assertNoLogs("tierlotto.workflows", level="INFO"):
            with self.assertRaises(RuntimeError):
                distribute_prize(ENGINE_CALLER, "bob", 10, escrow)
        self.assertEqual(len(escrow.payouts), 1)

    def test_confirmed_payout_is_logged(self):
        escrow = DummyEscrow()
        with self.assertLogs("tierlotto.workflows", level="INFO") as logs:
            response = distribute_prize(ENGINE_CALLER, "bob", 10, escrow)
        self.assertEqual(response, SUCCESS)
        self.assertIn("Escrow paid 10 to bob", logs.output[-1])


class DrawAndPayWorkflowTestCase(WorkflowTestCase):
    def _closed_round(self, ticket_price: int, purchases: list[tuple[str, int]]) -> int:
        with self.Session.begin() as session:
            round_id = create_round(session, ticket_price, now=T0)
            for owner, amount in purchases:
                record_ticket_purchase(session, owner, amount, now=T0)
            close_round(session, now=T0)
        return round_id

    def test_draws_and_pays_each_winner(self):
        round_id = self._closed_round(10, [("alice", 20), ("bob", 20)])
        escrow = DummyEscrow()
        with self.Session.begin() as session:
            draws = [
                draw_winner_and_pay(session, round_id, escrow, 0, now=T0)
                for _ in range(4)
            ]

        self.assertEqual([d.ticket_number for d in draws], [1, 2, 3, 4])
        self.assertEqual(
            escrow.payouts,
            [
                {"recipient": "alice", "amount": 8, "reference": f"round-{round_id}-ticket-1"},
                {"recipient": "alice", "amount": 10, "reference": f"round-{round_id}-ticket-2"},
                {"recipient": "bob", "amount": 12, "reference": f"round-{round_id}-ticket-3"},
                {"recipient": "bob", "amount": 10, "reference": f"round-{round_id}-ticket-4"},
            ],
        )
        self.assertTrue(draws[-1].new_round_created)
        with self.Session() as session:
            self.assertEqual(active_round_id(session), round_id + 1)
            self.assertEqual(len(list_rounds(session)), 2)

    def test_zero_prizes_are_not_paid(self):
        round_id = self._closed_round(1, [("alice", 4)])
        escrow = DummyEscrow()
        with self.Session.begin() as session:
            first = draw_winner_and_pay(session, round_id, escrow, 0, now=T0)
            self.assertEqual(first.prize_amount, 0)
            self.assertEqual(escrow.payouts, [])

            second = draw_winner_and_pay(session, round_id, escrow, 0, now=T0)
            self.assertEqual(second.prize_amount, 1)
            self.assertEqual(len(escrow.payouts), 1)

    def test_failed_payout_rolls_back_the_draw(self):
        round_id = self._closed_round(10, [("alice", 40)])
        escrow = DummyEscrow(payout_response={"status": "error", "message": "down"})

        with self.assertRaises(RuntimeError):
            with self.Session.begin() as session:
                draw_winner_and_pay(session, round_id, escrow, 0, now=T0)

        with self.Session() as session:
            self.assertEqual(round_winners(session, round_id), [])
            lottery_round = get_round(session, round_id)
            self.assertEqual(lottery_round.total_winners_drawn, 0)

    def test_generate_winner_with_seed_source(self):
        round_id = self._closed_round(10, [("alice", 40)])
        with self.Session.begin() as session:
            draw = generate_winner(
                session, round_id, seed_source=FixedSeedSource([2]), now=T0
            )
            self.assertEqual(draw.ticket_number, 3)
            self.assertEqual(draw.owner, "alice")


class RoundSummaryTestCase(WorkflowTestCase):
    def test_summary_is_json_serializable(self):
        with self.Session.begin() as session:
            round_id = create_round(session, 10**20, now=T0)
            record_ticket_purchase(session, "alice", 4 * 10**20, now=T0)
            close_round(session, now=T0)
            generate_winner(session, round_id, 0, now=T0)

        with self.Session() as session:
            summary = round_summary(session, round_id)

        decoded = json.loads(json.dumps(summary))
        self.assertEqual(decoded["id"], round_id)
        self.assertEqual(decoded["status"], "closed")
        self.assertEqual(decoded["ticket_price"], str(10**20))
        self.assertEqual(decoded["prize_pool"], str(4 * 10**20))
        self.assertEqual(len(decoded["purchases"]), 1)
        self.assertEqual(decoded["purchases"][0]["owner"], "alice")
        self.assertEqual(len(decoded["winners"]), 1)
        self.assertEqual(decoded["winners"][0]["ticket_number"], 1)
        self.assertEqual(decoded["winners"][0]["prize_amount"], str(8 * 10**19))

    def test_summary_of_unknown_round(self):
        with self.Session() as session:
            with self.assertRaises(RoundNotFound):
                round_summary(session, 99)


if __name__ == "__main__":
    unittest.main()
