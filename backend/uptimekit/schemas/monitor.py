"""Monitor schemas shared by the scheduler and the API."""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class MonitorType(str, Enum):
    """Kinds of probe a monitor can run."""
    HTTP = "http"
    ICMP = "icmp"
    DNS = "dns"
    SSL = "ssl"


class CheckStatus(str, Enum):
    """Observed status of a monitor.

    UNKNOWN only exists in memory, before the first check of a loop completes.
    Heartbeats are always UP or DOWN.
    """
    UNKNOWN = "unknown"
    UP = "up"
    DOWN = "down"


class EventKind(str, Enum):
    """Notification events raised by the check engine."""
    MONITOR_UP = "monitor_up"
    MONITOR_DOWN = "monitor_down"
    SSL_VALID = "ssl_valid"
    SSL_EXPIRED = "ssl_expired"
    SSL_EXPIRING = "ssl_expiring"


class MonitorSnapshot(BaseModel):
    """Read-only view of a stored monitor, as seen by one scheduling pass."""
    id: int
    type: MonitorType
    url: str = Field(..., min_length=1)
    interval: int = Field(..., ge=1)  # seconds
    name: Optional[str] = None
    webhook_url: Optional[str] = None
    group_name: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True

    @property
    def display_name(self) -> str:
        return self.name or self.url

    def loop_changed(self, other: "MonitorSnapshot") -> bool:
        """True if the polling loop must be rebuilt to follow ``other``."""
        return (
            self.interval != other.interval
            or self.url != other.url
            or self.type != other.type
        )
