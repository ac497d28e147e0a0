# =============================================
# File: school_records/db/repo.py
# Purpose: DB bootstrap: configure engine from DB_URL (default SQLite), create tables, hand out sessions.
# =============================================
from __future__ import annotations

import os

from loguru import logger
from sqlmodel import Session, SQLModel, create_engine

DB_URL = os.getenv("DB_URL", "sqlite:///./school_records.db")


def _make_engine(url: str):
    # Loaders run in the threadpool; SQLite connections must be shareable across threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = _make_engine(DB_URL)


def reset_engine(url: str) -> None:
    """Point the module at another database (tests, CLI --db)."""
    global engine
    engine.dispose()
    engine = _make_engine(url)


def init_db() -> None:
    # models must be imported so their tables are registered on the metadata
    from school_records.db import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info(f"[db] tables ready url={engine.url.render_as_string(hide_password=True)}")


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)
