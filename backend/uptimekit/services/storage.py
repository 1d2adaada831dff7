"""Storage service - the scheduler's view of the monitor database.

Reads the monitor list and the notification switch, and records heartbeats and
certificate snapshots. Write failures are logged and swallowed so that a
storage hiccup never stops a check loop.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database import async_session
from ..models import Monitor, Heartbeat, Setting, SslCertificate
from ..models.settings import NOTIFICATIONS_ENABLED_KEY
from ..schemas.monitor import CheckStatus, MonitorSnapshot
from ..utils.db_utils import retry_on_lock
from .checker import CertificateSnapshot

logger = logging.getLogger(__name__)


class StorageService:
    """Service for reading monitors and persisting check results."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or async_session

    async def list_monitors(self) -> List[MonitorSnapshot]:
        """Return every stored monitor that can be scheduled.

        Rows with an unknown type or an interval below one second are skipped.
        Database errors propagate to the caller.
        """
        async with self._session_factory() as session:
            result = await session.execute(select(Monitor).order_by(Monitor.id))
            rows = result.scalars().all()

        snapshots = []
        for row in rows:
            try:
                snapshots.append(MonitorSnapshot.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid monitor {row.id}: {e.error_count()} validation error(s)")
        return snapshots

    async def append_heartbeat(self, monitor_id: int, status: CheckStatus, latency_ms: int) -> None:
        """Record one check result."""
        try:
            async with self._session_factory() as session:
                session.add(Heartbeat(
                    monitor_id=monitor_id,
                    status=CheckStatus(status).value,
                    latency=max(0, int(latency_ms)),
                ))
                await retry_on_lock(session.commit)
        except Exception as e:
            logger.error(f"Failed to log heartbeat for monitor {monitor_id}: {e}")

    async def upsert_certificate_snapshot(self, monitor_id: int, snapshot: CertificateSnapshot) -> None:
        """Replace the stored certificate of a monitor with the latest one."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SslCertificate).where(SslCertificate.monitor_id == monitor_id)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = SslCertificate(monitor_id=monitor_id)
                    session.add(row)

                row.issuer = snapshot.issuer
                row.subject = snapshot.subject
                row.valid_from = snapshot.valid_from.isoformat()
                row.valid_to = snapshot.valid_to.isoformat()
                row.days_remaining = snapshot.days_remaining
                row.serial_number = snapshot.serial_number
                row.fingerprint = snapshot.fingerprint
                row.last_checked = datetime.utcnow()

                await retry_on_lock(session.commit)
        except Exception as e:
            logger.error(f"Failed to store SSL certificate for monitor {monitor_id}: {e}")

    async def get_notifications_enabled(self) -> bool:
        """Global notification switch; on when unset or unreadable."""
        try:
            async with self._session_factory() as session:
                setting = await session.get(Setting, NOTIFICATIONS_ENABLED_KEY)
        except Exception as e:
            logger.error(f"Failed to get notification settings: {e}")
            return True
        return setting.value == "1" if setting else True

    async def set_notifications_enabled(self, enabled: bool) -> None:
        async with self._session_factory() as session:
            setting = await session.get(Setting, NOTIFICATIONS_ENABLED_KEY)
            value = "1" if enabled else "0"
            if setting is None:
                session.add(Setting(key=NOTIFICATIONS_ENABLED_KEY, value=value))
            else:
                setting.value = value
            await retry_on_lock(session.commit)

    async def prune_old_heartbeats(self, retention_days: int) -> int:
        """Delete heartbeats older than the retention window; returns the row count."""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Heartbeat).where(Heartbeat.timestamp < cutoff)
            )
            await retry_on_lock(session.commit)
            return result.rowcount or 0


# Global instance
storage_service = StorageService()
