"""Heartbeat model - one row per check."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class Heartbeat(Base):
    """Check result, pruned after the retention window."""

    __tablename__ = "heartbeats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)  # up, down
    latency = Column(Integer, nullable=True)  # milliseconds
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationship
    monitor = relationship("Monitor", back_populates="heartbeats")
