from __future__ import annotations

import sys
from pathlib import Path

from alembic.autogenerate import api as ag_api
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from tierlotto.db.engine import make_engine
from tierlotto.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]
LEDGER_TABLES = frozenset(Base.metadata.tables)


def _only_ledger_tables(obj, name, type_, reflected, compare_to) -> bool:
    # Other applications may share the database; ignore their tables.
    if type_ == "table":
        return name in LEDGER_TABLES
    return True


def _head_revision() -> str | None:
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return ScriptDirectory.from_config(alembic_cfg).get_current_head()


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def main() -> int:
    """Compare the ledger models with the configured database.

    Exit codes: 0 when in sync, 1 when the schema or revision differs,
    2 when the check itself failed.
    """
    engine = make_engine()
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "include_object": _only_ledger_tables,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            current = context.get_current_revision()
            head = _head_revision()
            if current != head:
                print(
                    f"Ledger schema drift check: FAILED for {url_display}. "
                    f"Database is at revision {current}, head is {head}."
                )
                return 1

            migration = ag_api.produce_migrations(context, Base.metadata)
            upgrade_ops = migration.upgrade_ops
            if upgrade_ops is None:
                print(f"Ledger schema drift check: ERROR for {url_display}: missing upgrade ops.")
                return 2
            if upgrade_ops.is_empty():
                print(f"Ledger schema drift check: OK (revision {head}) for {url_display}.")
                return 0
            print(f"Ledger schema drift check: FAILED for {url_display}. Differences detected:")
            _print_ops(upgrade_ops.ops or [])
            return 1
    except Exception as exc:
        print(f"Ledger schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
