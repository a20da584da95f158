"""Database package."""

from saint.db.base import Base
from saint.db.session import create_engine, create_session_factory, init_db

__all__ = ["Base", "create_engine", "create_session_factory", "init_db"]
