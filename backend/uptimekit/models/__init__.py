"""Database models."""
from .settings import Setting
from .monitor import Monitor
from .heartbeat import Heartbeat
from .ssl_certificate import SslCertificate

__all__ = ["Setting", "Monitor", "Heartbeat", "SslCertificate"]
