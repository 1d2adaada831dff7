"""SslCertificate model - latest certificate seen for an SSL monitor."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class SslCertificate(Base):
    """Most recent certificate snapshot, one row per monitor."""

    __tablename__ = "ssl_certificates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(
        Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    issuer = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    valid_from = Column(String, nullable=True)  # ISO-8601
    valid_to = Column(String, nullable=True)  # ISO-8601
    days_remaining = Column(Integer, nullable=True)
    serial_number = Column(String, nullable=True)
    fingerprint = Column(String, nullable=True)
    last_checked = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship
    monitor = relationship("Monitor", back_populates="ssl_certificate")
