"""Database layer for bankrecon application."""

from bankrecon.database.base import Database
from bankrecon.database.factories import create_database, create_sqlite_database
from bankrecon.database.sqlalchemy_db import SQLAlchemyDatabase

__all__ = ["Database", "SQLAlchemyDatabase", "create_database", "create_sqlite_database"]
