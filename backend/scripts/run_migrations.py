"""Utility for running Alembic migrations with retry-aware database checks.

Invoked during deploys so the retention schema is current before the API
starts accepting traffic.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from cadence.db.session import to_async_url

LOGGER = logging.getLogger("cadence.migrations")
DEFAULT_TIMEOUT = int(os.getenv("CADENCE_DB_MIGRATION_TIMEOUT", "60"))
DEFAULT_POLL_INTERVAL = float(os.getenv("CADENCE_DB_MIGRATION_POLL_INTERVAL", "3"))
SCRIPT_DIR = Path(__file__).resolve().parent
BACKEND_ROOT = SCRIPT_DIR.parent


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run Alembic migrations with readiness checks.")
    parser.add_argument(
        "--revision",
        default=os.getenv("CADENCE_DB_MIGRATION_REVISION", "head"),
        help="Revision identifier to upgrade to (default: head).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait for the database to become available (default: {DEFAULT_TIMEOUT}).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between readiness probes (default: {DEFAULT_POLL_INTERVAL}).",
    )
    parser.add_argument(
        "--config",
        default=str(BACKEND_ROOT / "alembic.ini"),
        help="Path to alembic.ini configuration file.",
    )
    parser.add_argument(
        "--sql",
        action="store_true",
        help="Print the upgrade SQL instead of applying it (no database connection).",
    )
    return parser.parse_args(argv)


def get_alembic_config(config_path: str) -> Config:
    config = Config(config_path)
    script_location = BACKEND_ROOT / "alembic"
    config.set_main_option("script_location", str(script_location))
    return config


def resolve_database_url(config: Config) -> str:
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        env_url = os.getenv("CADENCE_DATABASE_URL")
        if env_url:
            # ConfigParser interpolation treats a bare % as a reference.
            config.set_main_option("sqlalchemy.url", env_url.replace("%", "%%"))
            return env_url
        raise RuntimeError("CADENCE_DATABASE_URL must be set before running migrations.")
    return url


async def _probe(engine: Any) -> None:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


def wait_for_database(database_url: str, *, timeout: int, poll_interval: float) -> None:
    """Poll the database until a basic SELECT succeeds or timeout is reached."""
    deadline = time.time() + timeout
    last_error: Optional[Exception] = None

    async def _wait() -> None:
        nonlocal last_error
        engine = create_async_engine(to_async_url(database_url), pool_pre_ping=True)
        try:
            while True:
                try:
                    await _probe(engine)
                    LOGGER.info("Database is reachable.")
                    return
                except OperationalError as exc:  # transient connectivity
                    last_error = exc
                    LOGGER.warning("Database not ready yet: %s", exc)
                except SQLAlchemyError as exc:
                    last_error = exc
                    LOGGER.error("Database error during readiness probe: %s", exc)
                    break
                if time.time() >= deadline:
                    break
                await asyncio.sleep(poll_interval)
        finally:
            await engine.dispose()
        raise RuntimeError("Database did not become ready in time.") from last_error

    asyncio.run(_wait())


def run_migrations(
    revision: str,
    *,
    timeout: int,
    poll_interval: float,
    config: Optional[Config] = None,
    sql: bool = False,
) -> None:
    """Upgrade to ``revision``; with ``sql`` the DDL is printed and nothing connects."""
    config = config or get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    database_url = resolve_database_url(config)
    if sql:
        LOGGER.info("Rendering migration SQL up to %s", revision)
        command.upgrade(config, revision, sql=True)
        return
    LOGGER.info(
        "Running migrations up to %s (timeout=%ss poll=%ss)",
        revision,
        timeout,
        poll_interval,
    )
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)
    command.upgrade(config, revision)
    LOGGER.info("Migrations complete.")


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("CADENCE_DB_MIGRATION_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        run_migrations(
            args.revision,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            config=get_alembic_config(args.config),
            sql=args.sql,
        )
    except (RuntimeError, SQLAlchemyError, CommandError) as exc:
        LOGGER.exception("Migration run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
