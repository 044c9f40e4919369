"""Database package for drivevault."""

from drivevault.db.base import Base
from drivevault.db.session import create_engine, create_session_maker

__all__ = [
    "Base",
    "create_engine",
    "create_session_maker",
]
