"""Check orchestrator - runs one check of a monitor and decides what to notify.

A check is: probe, record a heartbeat, compare the new status with the
previous one, and for SSL monitors, warn as the certificate approaches expiry.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..schemas.monitor import CheckStatus, EventKind, MonitorSnapshot, MonitorType
from .alerter import AlerterService, alerter_service
from .checker import CertificateSnapshot, CheckerService, checker_service
from .storage import StorageService, storage_service

logger = logging.getLogger(__name__)

# Days before expiry at which an ssl_expiring warning is sent, least urgent first
SSL_EXPIRY_THRESHOLDS = (30, 14, 7, 3, 1)


@dataclass
class CheckOutcome:
    """What one check observed, and the state to carry into the next one."""
    status: CheckStatus
    latency_ms: int
    details: Optional[str] = None
    certificate: Optional[CertificateSnapshot] = None
    notified_threshold: int = 0
    events: List[EventKind] = field(default_factory=list)


def next_expiry_warning(days_remaining: int, notified_threshold: int) -> Tuple[Optional[int], int]:
    """Decide whether a certificate expiry warning is due.

    Picks the most urgent threshold the certificate has reached. A warning is
    due when nothing was sent yet in this expiry cycle, or when that threshold
    is more urgent than the last one warned about. Once the certificate is back
    above every threshold (renewed), the cycle starts over.

    Returns:
        (threshold to warn about or None, watermark to keep)
    """
    reached = [t for t in SSL_EXPIRY_THRESHOLDS if days_remaining <= t]
    if not reached:
        return None, 0

    threshold = reached[-1]
    if notified_threshold == 0 or threshold < notified_threshold:
        return threshold, threshold
    return None, notified_threshold


def transition_event(monitor_type: MonitorType, status: CheckStatus) -> EventKind:
    """Event raised when a monitor flips to ``status``."""
    if monitor_type == MonitorType.SSL:
        return EventKind.SSL_EXPIRED if status == CheckStatus.DOWN else EventKind.SSL_VALID
    return EventKind.MONITOR_DOWN if status == CheckStatus.DOWN else EventKind.MONITOR_UP


class CheckOrchestrator:
    """Runs checks against the probe, storage, and notification services."""

    def __init__(
        self,
        checker: Optional[CheckerService] = None,
        storage: Optional[StorageService] = None,
        alerter: Optional[AlerterService] = None,
    ):
        self.checker = checker or checker_service
        self.storage = storage or storage_service
        self.alerter = alerter or alerter_service

    async def check_monitor(
        self,
        monitor: MonitorSnapshot,
        prior_status: CheckStatus = CheckStatus.UNKNOWN,
        notified_threshold: int = 0,
    ) -> CheckOutcome:
        """Check a monitor once.

        Never raises: probe failures come back as DOWN, storage and delivery
        failures are logged by the services that hit them.

        Steps:
        1. Probe the target according to the monitor type
        2. Store a heartbeat, and the certificate snapshot for SSL monitors
        3. Notify on a transition between two known statuses
        4. For SSL monitors with a valid certificate, warn once per expiry
           threshold reached

        Args:
            monitor: Snapshot the loop was started with
            prior_status: Status of the previous check of this loop, UNKNOWN on the first one
            notified_threshold: Last expiry threshold warned about, 0 if none

        Returns:
            The observed result and the watermark for the next check
        """
        result = await self.checker.check(monitor.type, monitor.url)
        if result.status == CheckStatus.DOWN and result.details:
            logger.info(f"Check failed for monitor {monitor.display_name} ({monitor.type.value}): {result.details}")

        await self.storage.append_heartbeat(monitor.id, result.status, result.latency_ms)
        if result.certificate is not None:
            await self.storage.upsert_certificate_snapshot(monitor.id, result.certificate)

        outcome = CheckOutcome(
            status=result.status,
            latency_ms=result.latency_ms,
            details=result.details,
            certificate=result.certificate,
            notified_threshold=notified_threshold,
        )

        # The first check of a loop has nothing to compare against
        notifications_enabled: Optional[bool] = None
        if prior_status != CheckStatus.UNKNOWN and prior_status != result.status:
            notifications_enabled = await self.storage.get_notifications_enabled()
            if notifications_enabled:
                await self._dispatch(outcome, transition_event(monitor.type, result.status), monitor)

        certificate = result.certificate
        if monitor.type == MonitorType.SSL and certificate is not None and certificate.is_valid:
            threshold, watermark = next_expiry_warning(certificate.days_remaining, notified_threshold)
            if threshold is None:
                outcome.notified_threshold = watermark
            else:
                if notifications_enabled is None:
                    notifications_enabled = await self.storage.get_notifications_enabled()
                if notifications_enabled:
                    await self._dispatch(
                        outcome,
                        EventKind.SSL_EXPIRING,
                        monitor,
                        {"days_remaining": certificate.days_remaining, "threshold": threshold},
                    )
                    outcome.notified_threshold = watermark

        logger.debug(f"Monitor {monitor.display_name}: {result.status.value} ({result.latency_ms}ms)")
        return outcome

    async def _dispatch(
        self,
        outcome: CheckOutcome,
        event: EventKind,
        monitor: MonitorSnapshot,
        context: Optional[dict] = None,
    ) -> None:
        outcome.events.append(event)
        try:
            await self.alerter.dispatch(event, monitor, context)
        except Exception as e:
            logger.error(f"Failed to dispatch {event.value} for monitor {monitor.id}: {e}")


# Global instance
check_orchestrator = CheckOrchestrator()
