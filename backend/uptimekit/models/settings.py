"""Settings model - key-value store for global configuration."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime

from ..database import Base


class Setting(Base):
    """Global settings stored as key-value pairs."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


NOTIFICATIONS_ENABLED_KEY = "notifications_enabled"

# Default settings
DEFAULT_SETTINGS = {
    NOTIFICATIONS_ENABLED_KEY: "1",  # 0 or 1
}
