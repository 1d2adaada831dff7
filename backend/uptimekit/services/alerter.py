"""Alerter service - sends desktop notifications and webhooks for monitor events."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import httpx
from plyer import notification

from ..schemas.monitor import EventKind, MonitorSnapshot

logger = logging.getLogger(__name__)

APP_NAME = "UptimeKit"

WEBHOOK_TIMEOUT_SECONDS = 10

# Events whose webhook payload reports the monitor as down
DOWN_EVENTS = {EventKind.MONITOR_DOWN, EventKind.SSL_EXPIRED}


class AlerterService:
    """Service for delivering notification events.

    The check engine decides when an event happens; this service only knows
    how to deliver it. Delivery failures are logged and never raised.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def dispatch(
        self,
        event: EventKind,
        monitor: MonitorSnapshot,
        context: Optional[dict] = None,
    ) -> None:
        """Deliver one event for a monitor.
        
        ``context["days_remaining"]`` is required for ssl_expiring events.
        """
        context = context or {}
        title, message = self._build_message(event, monitor, context)
        logger.info(f"{event.value} for {monitor.display_name}: {message}")
        
        await self._send_desktop_notification(title, message)

        if monitor.webhook_url:
            await self._send_webhook(monitor.webhook_url, self.build_webhook_payload(event, monitor))

    def _build_message(self, event: EventKind, monitor: MonitorSnapshot, context: dict) -> Tuple[str, str]:
        """Title and body of the desktop notification."""
        name = monitor.display_name
        if event == EventKind.MONITOR_DOWN:
            return "Monitor Down", f"{name} is not responding"
        elif event == EventKind.MONITOR_UP:
            return "Monitor Back Up", f"{name} is now responding"
        elif event == EventKind.SSL_EXPIRED:
            return "SSL Certificate Invalid", f"{name} certificate has expired or is not valid"
        elif event == EventKind.SSL_VALID:
            return "SSL Certificate Valid", f"{name} certificate is valid again"
        
        days = context.get("days_remaining")
        unit = "day" if days == 1 else "days"
        return "SSL Certificate Expiring", f"{name} certificate expires in {days} {unit}"

    def build_webhook_payload(self, event: EventKind, monitor: MonitorSnapshot) -> dict:
        return {
            "event": event.value,
            "monitor": {
                "name": monitor.name,
                "url": monitor.url,
                "status": "down" if event in DOWN_EVENTS else "up",
                "time": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
        }

    async def _send_desktop_notification(self, title: str, message: str) -> bool:
        """Show an OS notification (blocking backend, run in the thread pool)."""
        try:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(
                None,
                lambda: notification.notify(title=title, message=message, app_name=APP_NAME),
            )
            return True
        except Exception as e:
            # plyer raises NotImplementedError on headless hosts without a backend
            logger.warning(f"Failed to send desktop notification: {e}")
            return False

    async def _send_webhook(self, url: str, payload: dict) -> bool:
        """Send a webhook POST request."""
        try:
            async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                if response.status_code < 400:
                    logger.info(f"Webhook sent: {payload['event']} for {payload['monitor']['name']}")
                    return True
                else:
                    logger.warning(f"Webhook returned {response.status_code}")
                    return False
        except Exception as e:
            logger.error(f"Failed to send webhook to {url}: {e}")
            return False


# Global instance
alerter_service = AlerterService()
