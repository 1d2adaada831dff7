"""Tests for the probe executors."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import dns.resolver
import httpx
import pytest
from cryptography.hazmat.primitives.serialization import Encoding

from conftest import make_certificate
from uptimekit.schemas.monitor import CheckStatus, MonitorType
from uptimekit.services.checker import (
    CheckerService,
    build_certificate_snapshot,
    parse_ssl_target,
)


def _checker_returning(status_code: int, seen: list = None) -> CheckerService:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code)

    return CheckerService(transport=httpx.MockTransport(handler))


def _checker_raising(exc: Exception) -> CheckerService:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return CheckerService(transport=httpx.MockTransport(handler))


class TestHttpProbe:
    """Tests for the HTTP probe."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [200, 201, 204, 299])
    async def test_2xx_is_up(self, status_code):
        result = await _checker_returning(status_code).check(MonitorType.HTTP, "https://example.com")

        assert result.status == CheckStatus.UP
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [300, 302, 404, 418, 500, 503, 599])
    async def test_non_2xx_is_down(self, status_code):
        result = await _checker_returning(status_code).check(MonitorType.HTTP, "https://example.com")

        assert result.status == CheckStatus.DOWN
        assert result.details == f"HTTP {status_code}"

    @pytest.mark.asyncio
    async def test_connection_error_is_down(self):
        checker = _checker_raising(httpx.ConnectError("connection refused"))

        result = await checker.check(MonitorType.HTTP, "https://example.com")

        assert result.status == CheckStatus.DOWN
        assert "Connection error" in result.details

    @pytest.mark.asyncio
    async def test_timeout_is_down(self):
        checker = _checker_raising(httpx.ReadTimeout("timed out"))

        result = await checker.check(MonitorType.HTTP, "https://example.com")

        assert result.status == CheckStatus.DOWN
        assert result.details == "Request timeout"

    @pytest.mark.asyncio
    async def test_bare_host_gets_http_scheme(self):
        seen = []
        await _checker_returning(200, seen).check(MonitorType.HTTP, "example.com")

        assert str(seen[0].url) == "http://example.com"


class TestParseSslTarget:
    """Tests for SSL target parsing."""

    @pytest.mark.parametrize("target, expected", [
        ("example.com", ("example.com", 443)),
        ("example.com:8443", ("example.com", 8443)),
        ("example.com:abc", ("example.com", 443)),
        ("https://example.com", ("example.com", 443)),
        ("https://example.com:9443/health", ("example.com", 9443)),
        ("example.com/path", ("example.com", 443)),
    ])
    def test_forms(self, target, expected):
        assert parse_ssl_target(target) == expected


class TestCertificateSnapshot:
    """Tests for certificate metadata extraction."""

    def test_ten_days_remaining_is_valid(self, now, cert_expiring_in_10_days):
        snapshot = build_certificate_snapshot(cert_expiring_in_10_days, "example.com", now=now)

        assert snapshot.days_remaining == 10
        assert snapshot.is_valid is True
        assert snapshot.issuer == "Example CA"
        assert snapshot.subject == "example.com"
        assert snapshot.serial_number == "1A2B3C"

    def test_fingerprint_is_colon_separated_sha1(self, now, cert_expiring_in_10_days):
        snapshot = build_certificate_snapshot(cert_expiring_in_10_days, "example.com", now=now)

        parts = snapshot.fingerprint.split(":")
        assert len(parts) == 20
        assert all(len(p) == 2 and p == p.upper() for p in parts)

    def test_expired_certificate(self, now):
        cert = make_certificate(now - timedelta(days=90), now - timedelta(days=2))

        snapshot = build_certificate_snapshot(cert, "example.com", now=now)

        assert snapshot.days_remaining == -2
        assert snapshot.is_valid is False

    def test_not_yet_valid_certificate(self, now):
        cert = make_certificate(now + timedelta(days=1), now + timedelta(days=90))

        snapshot = build_certificate_snapshot(cert, "example.com", now=now)

        assert snapshot.is_valid is False

    def test_last_partial_day_is_not_valid(self, now):
        cert = make_certificate(now - timedelta(days=90), now + timedelta(hours=5))

        snapshot = build_certificate_snapshot(cert, "example.com", now=now)

        assert snapshot.days_remaining == 0
        assert snapshot.is_valid is False

    def test_issuer_falls_back_to_common_name(self, now):
        cert = make_certificate(now - timedelta(days=1), now + timedelta(days=60), organization=None)

        snapshot = build_certificate_snapshot(cert, "example.com", now=now)

        assert snapshot.issuer == "Example Root"


class TestSslProbe:
    """Tests for the SSL probe."""

    @pytest.mark.asyncio
    async def test_valid_certificate_is_up(self, cert_expiring_in_10_days):
        der = cert_expiring_in_10_days.public_bytes(Encoding.DER)
        checker = CheckerService()

        with patch.object(CheckerService, "_fetch_certificate", return_value=der) as fetch:
            result = await checker.check(MonitorType.SSL, "https://example.com:8443")

        fetch.assert_called_once_with("example.com", 8443)
        assert result.status == CheckStatus.UP
        assert result.certificate is not None
        assert 9 <= result.certificate.days_remaining <= 10

    @pytest.mark.asyncio
    async def test_expired_certificate_is_down_with_snapshot(self, now):
        der = make_certificate(now - timedelta(days=90), now - timedelta(days=1)).public_bytes(Encoding.DER)

        with patch.object(CheckerService, "_fetch_certificate", return_value=der):
            result = await CheckerService().check(MonitorType.SSL, "example.com")

        assert result.status == CheckStatus.DOWN
        assert result.details == "Certificate expired"
        assert result.certificate.is_valid is False

    @pytest.mark.asyncio
    async def test_connection_refused_is_down(self):
        with patch.object(CheckerService, "_fetch_certificate", side_effect=ConnectionRefusedError("refused")):
            result = await CheckerService().check(MonitorType.SSL, "example.com")

        assert result.status == CheckStatus.DOWN
        assert result.certificate is None

    @pytest.mark.asyncio
    async def test_missing_certificate_is_down(self):
        with patch.object(CheckerService, "_fetch_certificate", return_value=None):
            result = await CheckerService().check(MonitorType.SSL, "example.com")

        assert result.status == CheckStatus.DOWN
        assert result.details == "No certificate found"


class TestDnsProbe:
    """Tests for the DNS probe."""

    @pytest.mark.asyncio
    async def test_resolution_success_is_up(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(return_value=MagicMock())) as resolve:
            result = await CheckerService().check(MonitorType.DNS, "example.com")

        resolve.assert_awaited_once_with("example.com", "A")
        assert result.status == CheckStatus.UP

    @pytest.mark.asyncio
    async def test_nxdomain_is_down(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(side_effect=dns.resolver.NXDOMAIN())):
            result = await CheckerService().check(MonitorType.DNS, "missing.invalid")

        assert result.status == CheckStatus.DOWN
        assert "Resolution failed" in result.details

    @pytest.mark.asyncio
    async def test_url_target_resolves_hostname(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(return_value=MagicMock())) as resolve:
            await CheckerService().check(MonitorType.DNS, "https://example.com/path")

        resolve.assert_awaited_once_with("example.com", "A")


def _ping_process(returncode: int, stdout: bytes) -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, b""))
    return proc


class TestIcmpProbe:
    """Tests for the ICMP probe."""

    @pytest.mark.asyncio
    async def test_reply_is_up_with_round_trip_time(self):
        proc = _ping_process(0, b"64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=14.6 ms\n")

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            result = await CheckerService().check(MonitorType.ICMP, "1.1.1.1")

        assert result.status == CheckStatus.UP
        assert result.latency_ms == 15

    @pytest.mark.asyncio
    async def test_reply_without_time_reports_zero_latency(self):
        proc = _ping_process(0, b"1 packets transmitted, 1 received\n")

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            result = await CheckerService().check(MonitorType.ICMP, "1.1.1.1")

        assert result.status == CheckStatus.UP
        assert result.latency_ms == 0

    @pytest.mark.asyncio
    async def test_no_reply_is_down(self):
        proc = _ping_process(1, b"1 packets transmitted, 0 received, 100% packet loss\n")

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            result = await CheckerService().check(MonitorType.ICMP, "10.255.255.1")

        assert result.status == CheckStatus.DOWN
        assert result.latency_ms == 0

    @pytest.mark.asyncio
    async def test_missing_ping_binary_is_down(self):
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError("ping"))):
            result = await CheckerService().check(MonitorType.ICMP, "1.1.1.1")

        assert result.status == CheckStatus.DOWN
