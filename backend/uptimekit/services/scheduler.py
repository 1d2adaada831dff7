"""Scheduler service - keeps one polling job alive per stored monitor.

Design:
- A reconciliation job re-reads the monitor list every few seconds and diffs it
  against the jobs currently scheduled
- Each monitor runs as its own APScheduler interval job (``monitor-<id>``),
  first run immediately, then every ``interval`` seconds
- ``max_instances=1`` on the job id keeps checks of one monitor from
  overlapping, also across a job being replaced
- The per-monitor state (last status, SSL warning watermark) lives only in
  memory and is rebuilt from scratch when the process restarts
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..schemas.monitor import CheckStatus, MonitorSnapshot
from ..schemas.status import ActiveMonitorStatus
from .orchestrator import CheckOrchestrator, check_orchestrator
from .storage import StorageService, storage_service

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile_monitors"
PRUNE_JOB_ID = "prune_heartbeats"


def monitor_job_id(monitor_id: int) -> str:
    return f"monitor-{monitor_id}"


@dataclass
class ActiveMonitorState:
    """Bookkeeping for one running monitor loop."""
    monitor: MonitorSnapshot
    job_id: str
    last_status: CheckStatus = CheckStatus.UNKNOWN
    last_notified_threshold: int = 0


class SchedulerService:
    """Service for scheduling and running periodic checks.

    Owns the active-monitor map exclusively. All mutations happen on the event
    loop thread, and removing a job and dropping its state never await in
    between, so reconciliation and check completions cannot interleave there.
    """

    def __init__(
        self,
        orchestrator: Optional[CheckOrchestrator] = None,
        storage: Optional[StorageService] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        reconcile_interval: Optional[int] = None,
    ):
        self.orchestrator = orchestrator or check_orchestrator
        self.storage = storage or storage_service
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.reconcile_interval = reconcile_interval or settings.reconcile_interval_seconds
        self._active: Dict[int, ActiveMonitorState] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return len(self._active)

    def start(self):
        """Start the scheduler."""
        if self._running:
            return
        
        now = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self.reconcile,
            trigger=IntervalTrigger(seconds=self.reconcile_interval),
            id=RECONCILE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=now,
        )
        
        # Prune on startup, then hourly
        self.scheduler.add_job(
            self._prune_heartbeats,
            trigger=IntervalTrigger(hours=1),
            id=PRUNE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            next_run_time=now,
        )
        
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (reconcile every {self.reconcile_interval}s)")

    def stop(self):
        """Cancel every monitor loop and stop the scheduler."""
        if not self._running:
            return
        for monitor_id in list(self._active):
            self._cancel(monitor_id)
        self.scheduler.remove_all_jobs()
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    async def reconcile(self):
        """Align the running monitor jobs with the stored monitors.
        
        New monitors get a fresh loop. Deleted monitors lose theirs. A change
        of interval, target, or type rebuilds the loop, keeping the last status
        so the edit itself cannot look like a transition, but restarting the
        SSL warning cycle. If the monitor list cannot be read, the running
        loops are left as they are until the next pass.
        """
        try:
            monitors = await self.storage.list_monitors()
        except Exception as e:
            logger.error(f"Error refreshing monitors: {e}")
            return
        
        current = {monitor.id: monitor for monitor in monitors}

        for monitor_id in list(self._active):
            if monitor_id not in current:
                self._cancel(monitor_id)
                logger.info(f"Stopped monitoring monitor {monitor_id} (deleted)")
        
        for monitor in monitors:
            state = self._active.get(monitor.id)
            if state is None:
                self._schedule(monitor)
                logger.info(f"Started monitoring {monitor.display_name} every {monitor.interval}s")
            elif state.monitor.loop_changed(monitor):
                last_status = state.last_status
                self._cancel(monitor.id)
                self._schedule(monitor, last_status)
                logger.info(f"Restarted monitoring {monitor.display_name} every {monitor.interval}s")
            elif state.monitor != monitor:
                # Name or webhook edits apply to the next check, no restart needed
                state.monitor = monitor

    def _schedule(self, monitor: MonitorSnapshot, last_status: CheckStatus = CheckStatus.UNKNOWN):
        """Register state and start the interval job for a monitor."""
        state = ActiveMonitorState(
            monitor=monitor,
            job_id=monitor_job_id(monitor.id),
            last_status=last_status,
        )
        self._active[monitor.id] = state
        self.scheduler.add_job(
            self._run_check,
            trigger=IntervalTrigger(seconds=monitor.interval),
            args=[monitor.id, state],
            id=state.job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            next_run_time=datetime.now(timezone.utc),
        )

    def _cancel(self, monitor_id: int):
        """Remove the job and the state of a monitor in one step."""
        state = self._active.pop(monitor_id, None)
        if state is None:
            return
        try:
            self.scheduler.remove_job(state.job_id)
        except JobLookupError:
            pass

    async def _run_check(self, monitor_id: int, state: ActiveMonitorState):
        """Job body: check once and store the outcome for the next comparison.
        
        Steps:
        1. Run one check with the status and watermark of this loop
        2. If the monitor was deleted meanwhile, drop the outcome
        3. If the loop was replaced meanwhile, hand the observed status to the
           new loop, since any transition event was already sent
        4. Otherwise store status and watermark on this loop
        """
        try:
            outcome = await self.orchestrator.check_monitor(
                state.monitor,
                state.last_status,
                state.last_notified_threshold,
            )
        except Exception as e:
            logger.error(f"Error checking monitor {monitor_id}: {e}")
            return
        
        # The loop may have been cancelled or replaced while the probe ran
        current = self._active.get(monitor_id)
        if current is None:
            logger.debug(f"Discarding result for monitor {monitor_id}, its loop was cancelled")
            return
        
        if current is not state:
            # The successor keeps its own fresh watermark
            current.last_status = outcome.status
            logger.debug(f"Handing result for monitor {monitor_id} to its replacement loop")
            return
        
        state.last_status = outcome.status
        state.last_notified_threshold = outcome.notified_threshold

    async def _prune_heartbeats(self):
        """Delete heartbeats older than the retention window."""
        try:
            removed = await self.storage.prune_old_heartbeats(settings.heartbeat_retention_days)
            logger.info(f"Pruned {removed} heartbeats older than {settings.heartbeat_retention_days} days")
        except Exception as e:
            logger.error(f"Error pruning heartbeats: {e}")

    def get_state(self, monitor_id: int) -> Optional[ActiveMonitorState]:
        return self._active.get(monitor_id)

    def snapshot(self) -> List[ActiveMonitorStatus]:
        """Read-only copy of the active monitors, for the status API."""
        return [
            ActiveMonitorStatus(
                id=state.monitor.id,
                name=state.monitor.name,
                type=state.monitor.type,
                url=state.monitor.url,
                interval=state.monitor.interval,
                last_status=state.last_status,
                last_notified_threshold=state.last_notified_threshold,
            )
            for state in sorted(self._active.values(), key=lambda s: s.monitor.id)
        ]


# Global instance
scheduler_service = SchedulerService()
