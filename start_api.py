#!/usr/bin/env python3
"""Container entry point: wait for Postgres, migrate to head, then hand the process to uvicorn."""
import logging
import os
import sys

import wait_for_db  # noqa: F401  blocks until the database answers

from alembic import command
from alembic.config import Config

from app.core.config import settings
from app.core.logging import configure_logging

logger = logging.getLogger("app.start")


def migrate() -> None:
    cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(cfg, "head")
    logger.info("Migrations at head")


def serve() -> None:
    port = os.getenv("PORT", "8000")
    logger.info("Starting uvicorn on :%s (env=%s)", port, settings.ENV)
    os.execv(sys.executable, [
        sys.executable, "-m", "uvicorn", "app.main:app",
        "--host", "0.0.0.0", "--port", port, "--proxy-headers",
    ])


if __name__ == "__main__":
    configure_logging()
    migrate()
    serve()
