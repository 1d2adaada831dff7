"""Monitor model - items being monitored."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class Monitor(Base):
    """A monitored target - HTTP endpoint, pinged host, DNS name, or TLS certificate."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)
    type = Column(String, nullable=False)  # http, icmp, dns, ssl
    url = Column(String, nullable=False)  # URL, hostname, or host:port
    port = Column(Integer, nullable=True)
    interval = Column(Integer, nullable=False)  # seconds
    webhook_url = Column(String, nullable=True)
    group_name = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    heartbeats = relationship("Heartbeat", back_populates="monitor", cascade="all, delete-orphan")
    ssl_certificate = relationship(
        "SslCertificate", back_populates="monitor", uselist=False, cascade="all, delete-orphan"
    )
