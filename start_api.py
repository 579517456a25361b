#!/usr/bin/env python3
"""
Container entrypoint: wait for Postgres, migrate, seed the demo park, make sure every open-ended
time-slot template has its rolling window of instances, then hand over to uvicorn.
"""
import logging
import os
import sys

import wait_for_db  # noqa: F401

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from parkbooking.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("start_api")

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# engine built after migrations so alembic's env load never shares it
startup_engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
StartupSession = sessionmaker(autocommit=False, autoflush=False, bind=startup_engine)

from parkbooking.seed import run as run_seed  # noqa: E402
from parkbooking.services.time_slot_service import extend_instance_horizon  # noqa: E402

with StartupSession() as db:
    run_seed(db)
    horizon = extend_instance_horizon(db)
    logger.info("Instance horizon ready: %s new instances over %s open-ended templates",
                horizon["created"], horizon["templates"])
startup_engine.dispose()

port = os.environ.get("PORT", "8000")
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "parkbooking.main:app", "--host", "0.0.0.0", "--port", port],
)
