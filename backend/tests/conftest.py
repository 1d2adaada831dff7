"""Shared fixtures for the UptimeKit test suite."""
import os
import tempfile

# Keep the module-level engine away from the user's real database
os.environ.setdefault("DATA_PATH", tempfile.mkdtemp(prefix="uptimekit-tests-"))

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

from uptimekit.schemas.monitor import MonitorSnapshot, MonitorType  # noqa: E402


def make_monitor(
    monitor_id: int = 1,
    type: str = "http",
    url: str = "https://example.com",
    interval: int = 60,
    name: Optional[str] = "example",
    webhook_url: Optional[str] = None,
) -> MonitorSnapshot:
    return MonitorSnapshot(
        id=monitor_id,
        type=MonitorType(type),
        url=url,
        interval=interval,
        name=name,
        webhook_url=webhook_url,
    )


def make_certificate(
    not_before: datetime,
    not_after: datetime,
    common_name: str = "example.com",
    organization: Optional[str] = "Example CA",
) -> x509.Certificate:
    """Self-signed certificate with the given validity window."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject_attrs = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    issuer_attrs = [x509.NameAttribute(NameOID.COMMON_NAME, "Example Root")]
    if organization:
        issuer_attrs.insert(0, x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))

    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name(subject_attrs))
        .issuer_name(x509.Name(issuer_attrs))
        .public_key(key.public_key())
        .serial_number(0x1A2B3C)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


@pytest.fixture
def now() -> datetime:
    # Certificates store whole seconds
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def cert_expiring_in_10_days(now: datetime) -> x509.Certificate:
    return make_certificate(now - timedelta(days=30), now + timedelta(days=10, hours=1))
