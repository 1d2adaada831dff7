"""Pydantic schemas for scheduler snapshots and API responses."""
from .monitor import (
    MonitorType,
    CheckStatus,
    EventKind,
    MonitorSnapshot,
)
from .status import (
    ActiveMonitorStatus,
    HealthResponse,
    StatusOverview,
)

__all__ = [
    "MonitorType",
    "CheckStatus",
    "EventKind",
    "MonitorSnapshot",
    "ActiveMonitorStatus",
    "HealthResponse",
    "StatusOverview",
]
