"""Status API - in-memory view of the monitors being checked."""
from fastapi import APIRouter, Depends

from ..schemas.monitor import CheckStatus
from ..schemas.status import StatusOverview
from ..services.scheduler import SchedulerService, scheduler_service

router = APIRouter(prefix="/api/status", tags=["status"])


def get_scheduler() -> SchedulerService:
    """Dependency returning the process-wide scheduler."""
    return scheduler_service


@router.get("", response_model=StatusOverview)
async def get_status_overview(scheduler: SchedulerService = Depends(get_scheduler)):
    """Last observed status of every scheduled monitor."""
    monitors = scheduler.snapshot()
    counts = {status: 0 for status in CheckStatus}
    for monitor in monitors:
        counts[monitor.last_status] += 1

    return StatusOverview(
        total_monitors=len(monitors),
        monitors_up=counts[CheckStatus.UP],
        monitors_down=counts[CheckStatus.DOWN],
        monitors_unknown=counts[CheckStatus.UNKNOWN],
        monitors=monitors,
    )
