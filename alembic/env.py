from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy.engine import Connection, Engine
from dotenv import load_dotenv

# The ledger package lives at the repository root next to this directory.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from tierlotto.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from tierlotto.db.utils import resolve_sqlite_url  # noqa: E402
from tierlotto.models import Base  # noqa: E402 - registers the ledger tables

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _ledger_database_url() -> str:
    env_url = os.getenv("DB_URL")
    if env_url:
        return resolve_sqlite_url(env_url, ROOT_DIR)
    return DEFAULT_SQLITE_URL


LEDGER_DATABASE_URL = _ledger_database_url()

# ConfigParser interpolation treats '%' specially.
config.set_main_option("sqlalchemy.url", LEDGER_DATABASE_URL.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Emit the ledger DDL as SQL without connecting to the database."""

    context.configure(
        url=LEDGER_DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply ledger migrations over a live connection.

    SQLite runs in batch mode so constraint changes on the ledger tables are
    applied by table rebuilds.
    """

    connectable: Engine | Connection = make_engine(database_url=LEDGER_DATABASE_URL)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.engine.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
