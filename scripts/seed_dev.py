import json
import logging
import os
from datetime import datetime, timedelta, timezone

from tierlotto.db.engine import get_sessionmaker, make_engine
from tierlotto.models import Base, RoundStatus
from tierlotto.rounds import FixedSeedSource
from tierlotto.workflows import (
    close_round,
    create_round,
    generate_winner,
    link_controller,
    record_ticket_purchase,
    round_summary,
)

# Same seeds on every run so the seeded winners are reproducible.
DEV_SEEDS = [
    17, 4242, 987654321, 2**63, 3, 31337, 55, 8, 1024, 77,
    123456789, 2**64 - 1, 0, 99, 640, 12, 7, 5000, 21, 314159,
]


def main() -> None:
    """Seed the development database with one drawn round and one open round."""
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()

    # Drop and recreate all tables. The register row and the rounds reference
    # each other, so foreign key checks are disabled while dropping.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)
    controller_id = os.getenv("LOTTERY_CONTROLLER_ID")

    with Session.begin() as session:
        if controller_id:
            controller_id = link_controller(session, controller_id)

        round_id = create_round(session, 1_000, now=now - timedelta(days=7))
        buyers = [("alice", 12_500), ("bob", 3_000), ("carol", 41_999), ("dave", 1_000)]
        for i, (owner, amount) in enumerate(buyers):
            record_ticket_purchase(
                session,
                owner,
                amount,
                source_id=f"dev-{i}",
                caller=controller_id,
                now=now - timedelta(days=6, hours=-i),
            )
        close_round(session, now=now - timedelta(days=1))

        seeds = FixedSeedSource(DEV_SEEDS)
        summary = round_summary(session, round_id)
        while summary["status"] != RoundStatus.COMPLETE.value:
            draw = generate_winner(session, round_id, seed_source=seeds, now=now)
            print(
                f"ticket {draw.ticket_number:>3} -> {draw.owner:<6} prize {draw.prize_amount}"
            )
            summary = round_summary(session, round_id)

        print(json.dumps(summary, indent=2))
        print("Successor round:", json.dumps(round_summary(session, round_id + 1), indent=2))


if __name__ == "__main__":
    main()
