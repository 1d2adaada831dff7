"""Services for probing, scheduling, storage, and alerting."""
from .checker import CheckerService
from .storage import StorageService
from .alerter import AlerterService
from .orchestrator import CheckOrchestrator
from .scheduler import SchedulerService

__all__ = ["CheckerService", "StorageService", "AlerterService", "CheckOrchestrator", "SchedulerService"]
