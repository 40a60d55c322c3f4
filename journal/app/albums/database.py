"""Database configuration and session management for the journal."""

import os
from collections.abc import Generator

import sqlmodel

import common.settings

DATABASE_URL = f'sqlite:///{common.settings.DATA_DIR}/journal.db'

# Create engine with check_same_thread=False for SQLite
engine = sqlmodel.create_engine(
    DATABASE_URL,
    connect_args={'check_same_thread': False},
    echo=False,
)


def create_db_and_tables() -> None:
    """Create database tables."""
    # Import models to ensure they're registered with SQLModel
    from . import models  # noqa: F401 # pyright: ignore[reportUnusedImport]

    os.makedirs(common.settings.DATA_DIR, exist_ok=True)
    sqlmodel.SQLModel.metadata.create_all(engine)


def get_session() -> Generator[sqlmodel.Session, None, None]:
    """Get database session."""
    with sqlmodel.Session(engine) as session:
        yield session
