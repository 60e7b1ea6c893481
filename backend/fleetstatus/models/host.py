"""Host model - physical or cloud hosts that servers run on."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Host(Base):
    """A host grouping one or more monitored servers."""

    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    location = Column(String, nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    servers = relationship("Server", back_populates="host")
