"""
Database initialization helpers.

Models are imported here so their tables get registered on Base.metadata.
"""

from sparkle_api.db.session import engine
from sparkle_api.models.base import Base

from sparkle_api.models import post, user  # noqa: F401


def init_db() -> None:
    """
    Create all tables based on SQLAlchemy models.
    """
    Base.metadata.create_all(bind=engine)
