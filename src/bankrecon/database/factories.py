"""Database factory functions for creating database instances."""

import logging
import os
from pathlib import Path
from typing import Optional

from bankrecon.database.sqlalchemy_db import SQLAlchemyDatabase

logger = logging.getLogger(__name__)

DB_PATH_ENV = "BANKRECON_DB_PATH"
DEFAULT_DB_PATH = Path.home() / ".bankrecon" / "bankrecon.db"


def resolve_database_path(database_path: Optional[str] = None) -> Path:
    """Pick the SQLite file: explicit path, then BANKRECON_DB_PATH, then the default."""
    if database_path is None:
        database_path = os.environ.get(DB_PATH_ENV)
    if database_path is None:
        return DEFAULT_DB_PATH
    return Path(database_path).expanduser()


def create_database(database_url: str) -> SQLAlchemyDatabase:
    """Create a database for any SQLAlchemy URL; the schema is created on first use."""
    logger.debug("Opening database %s", database_url)
    return SQLAlchemyDatabase(database_url)


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks BANKRECON_DB_PATH
            environment variable, then defaults to ~/.bankrecon/bankrecon.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    path = resolve_database_path(database_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_database(f"sqlite:///{path}")
