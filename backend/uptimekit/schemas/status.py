"""Status schemas for the health and status endpoints."""
from typing import List, Optional
from pydantic import BaseModel

from .monitor import CheckStatus, MonitorType


class ActiveMonitorStatus(BaseModel):
    """In-memory scheduler state of one monitor."""
    id: int
    name: Optional[str] = None
    type: MonitorType
    url: str
    interval: int
    last_status: CheckStatus
    last_notified_threshold: int = 0


class HealthResponse(BaseModel):
    """Liveness of the monitoring agent."""
    status: str
    scheduler_running: bool
    active_monitors: int


class StatusOverview(BaseModel):
    """All monitors currently scheduled."""
    total_monitors: int
    monitors_up: int
    monitors_down: int
    monitors_unknown: int
    monitors: List[ActiveMonitorStatus]
