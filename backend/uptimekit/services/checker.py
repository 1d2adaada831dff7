"""Checker service - performs HTTP, ICMP, DNS, and SSL certificate probes.

Every probe is bounded by a fixed timeout and never raises: any failure is
reported as a DOWN result carrying the time spent before the failure.
"""
import asyncio
import re
import socket
import ssl
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple
from urllib.parse import urlparse

import dns.asyncresolver
import dns.exception
import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from ..schemas.monitor import CheckStatus, MonitorType

HTTP_TIMEOUT_SECONDS = 5
ICMP_TIMEOUT_SECONDS = 5
SSL_TIMEOUT_SECONDS = 10

DEFAULT_SSL_PORT = 443

# Grace period for the ping process itself on top of the reply timeout
PING_PROCESS_BUFFER_SECONDS = 2

# "time=14.2 ms" on Linux/macOS, "time<1ms" / "time=14ms" on Windows
PING_TIME_PATTERN = re.compile(r"time[=<]\s*(\d+(?:\.\d+)?)\s*ms")


@dataclass
class CertificateSnapshot:
    """Certificate metadata observed by one SSL probe."""
    issuer: str
    subject: str
    valid_from: datetime
    valid_to: datetime
    days_remaining: int
    serial_number: str
    fingerprint: str
    is_valid: bool


@dataclass
class ProbeResult:
    """Result of a single probe."""
    status: CheckStatus  # up or down
    latency_ms: int = 0
    details: Optional[str] = None
    certificate: Optional[CertificateSnapshot] = None


def _elapsed_ms(start: float) -> int:
    return max(0, int(round((time.perf_counter() - start) * 1000)))


def _extract_host(target: str) -> str:
    """Reduce a URL-form target to its hostname; bare names pass through."""
    target = target.strip()
    if "://" in target:
        return urlparse(target).hostname or ""
    return target.split("/")[0]


def parse_ssl_target(target: str) -> Tuple[str, int]:
    """Split an SSL monitor target into (hostname, port).

    Accepts ``https://host[:port]/path``, ``host:port`` and bare ``host``.
    A missing or unparsable port falls back to 443.
    """
    target = target.strip()

    if "://" in target:
        parsed = urlparse(target)
        try:
            port = parsed.port
        except ValueError:
            port = None
        return parsed.hostname or "", port or DEFAULT_SSL_PORT

    target = target.split("/")[0]
    if ":" in target:
        host, _, port_str = target.partition(":")
        port = int(port_str) if port_str.isdigit() and int(port_str) > 0 else DEFAULT_SSL_PORT
        return host, port

    return target, DEFAULT_SSL_PORT


def _name_attribute(name: x509.Name, *oids) -> Optional[str]:
    """First value found for the given OIDs, tried in order."""
    for oid in oids:
        attributes = name.get_attributes_for_oid(oid)
        if attributes:
            return str(attributes[0].value)
    return None


def build_certificate_snapshot(
    cert: x509.Certificate,
    hostname: str,
    now: Optional[datetime] = None,
) -> CertificateSnapshot:
    """Extract the observable state of a certificate.

    The validity window is checked here rather than by the TLS handshake, so
    expired and self-signed certificates can still be reported on.
    """
    now = now or datetime.now(timezone.utc)
    valid_from = cert.not_valid_before_utc
    valid_to = cert.not_valid_after_utc

    # timedelta.days floors, also for negative deltas
    days_remaining = (valid_to - now).days

    issuer = _name_attribute(cert.issuer, NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME)
    subject = _name_attribute(cert.subject, NameOID.COMMON_NAME, NameOID.ORGANIZATION_NAME)

    return CertificateSnapshot(
        issuer=issuer or "Unknown",
        subject=subject or hostname,
        valid_from=valid_from,
        valid_to=valid_to,
        days_remaining=days_remaining,
        serial_number=format(cert.serial_number, "X"),
        fingerprint=":".join(f"{b:02X}" for b in cert.fingerprint(hashes.SHA1())),
        is_valid=valid_from <= now <= valid_to and days_remaining > 0,
    )


class CheckerService:
    """Service for performing the protocol-specific probes."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Tests swap in an httpx.MockTransport
        self._transport = transport

    async def check(self, monitor_type: MonitorType, target: str) -> ProbeResult:
        """Run the probe matching the monitor type."""
        if monitor_type == MonitorType.HTTP:
            return await self._check_http(target)
        elif monitor_type == MonitorType.ICMP:
            return await self._check_icmp(target)
        elif monitor_type == MonitorType.DNS:
            return await self._check_dns(target)
        elif monitor_type == MonitorType.SSL:
            return await self._check_ssl(target)
        return ProbeResult(status=CheckStatus.DOWN, details=f"Unknown monitor type: {monitor_type}")

    async def _check_http(self, target: str) -> ProbeResult:
        """GET the URL; any 2xx is up, everything else is down."""
        if "://" not in target:
            target = f"http://{target}"

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=HTTP_TIMEOUT_SECONDS,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(target)
        except httpx.TimeoutException:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details="Request timeout")
        except httpx.HTTPError as e:
            return ProbeResult(
                status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=f"Connection error: {e}"
            )
        except Exception as e:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=str(e))

        latency = _elapsed_ms(start)
        if 200 <= response.status_code < 300:
            return ProbeResult(status=CheckStatus.UP, latency_ms=latency)
        return ProbeResult(status=CheckStatus.DOWN, latency_ms=latency, details=f"HTTP {response.status_code}")

    async def _check_icmp(self, target: str) -> ProbeResult:
        """Send one echo request through the system ping command."""
        host = _extract_host(target)
        if sys.platform == "win32":
            args = ["ping", "-n", "1", "-w", str(ICMP_TIMEOUT_SECONDS * 1000), host]
        else:
            args = ["ping", "-c", "1", "-W", str(ICMP_TIMEOUT_SECONDS), host]

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ProbeResult(status=CheckStatus.DOWN, details=f"Cannot run ping: {e}")

        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(),
                timeout=ICMP_TIMEOUT_SECONDS + PING_PROCESS_BUFFER_SECONDS,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ProbeResult(status=CheckStatus.DOWN, details="Ping timeout")

        if proc.returncode != 0:
            return ProbeResult(status=CheckStatus.DOWN, details="No reply")

        match = PING_TIME_PATTERN.search(stdout.decode(errors="replace"))
        latency = int(round(float(match.group(1)))) if match else 0
        return ProbeResult(status=CheckStatus.UP, latency_ms=latency)

    async def _check_dns(self, target: str) -> ProbeResult:
        """Resolve the A record of the target name."""
        host = _extract_host(target)
        start = time.perf_counter()
        try:
            await dns.asyncresolver.resolve(host, "A")
        except dns.exception.DNSException as e:
            return ProbeResult(
                status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=f"Resolution failed: {e}"
            )
        except Exception as e:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=str(e))
        return ProbeResult(status=CheckStatus.UP, latency_ms=_elapsed_ms(start))

    async def _check_ssl(self, target: str) -> ProbeResult:
        """Inspect the certificate served at the target; up iff it is currently valid."""
        host, port = parse_ssl_target(target)
        start = time.perf_counter()

        try:
            # Socket operations are blocking, run them in the thread pool
            loop = asyncio.get_event_loop()
            cert_der = await asyncio.wait_for(
                loop.run_in_executor(None, self._fetch_certificate, host, port),
                timeout=SSL_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details="SSL check timeout")
        except OSError as e:
            return ProbeResult(
                status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=f"Connection error: {e}"
            )
        except Exception as e:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=_elapsed_ms(start), details=str(e))

        latency = _elapsed_ms(start)
        if not cert_der:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=latency, details="No certificate found")

        try:
            snapshot = build_certificate_snapshot(x509.load_der_x509_certificate(cert_der), host)
        except ValueError as e:
            return ProbeResult(status=CheckStatus.DOWN, latency_ms=latency, details=f"Unreadable certificate: {e}")

        if snapshot.is_valid:
            return ProbeResult(status=CheckStatus.UP, latency_ms=latency, certificate=snapshot)

        if snapshot.days_remaining <= 0:
            details = "Certificate expired"
        else:
            details = "Certificate not yet valid"
        return ProbeResult(status=CheckStatus.DOWN, latency_ms=latency, details=details, certificate=snapshot)

    def _fetch_certificate(self, host: str, port: int) -> Optional[bytes]:
        """Return the peer certificate in DER form (blocking operation)."""
        # We only read the certificate, trust is not enforced here
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        with socket.create_connection((host, port), timeout=SSL_TIMEOUT_SECONDS) as sock:
            with context.wrap_socket(sock, server_hostname=host) as ssock:
                # getpeercert() returns an empty dict under CERT_NONE, use the binary form
                return ssock.getpeercert(binary_form=True)


# Global instance
checker_service = CheckerService()
