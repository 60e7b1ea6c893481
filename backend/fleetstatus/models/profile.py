"""Profile model - dashboard users and their roles."""
from sqlalchemy import Column, DateTime, Integer, String

from ..database import Base
from ..utils.clock import utcnow

ROLES = ("admin", "editor", "viewer")


class Profile(Base):
    """A dashboard user. Sessions are matched by token hash."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="viewer")
    session_token_hash = Column(String, nullable=True, index=True)  # SHA-256 of session token
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
