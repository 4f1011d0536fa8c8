"""Integration with the external proxy core."""

from nodeprobe.integration.core_client import CoreSession, ProxyCoreClient

__all__ = ["CoreSession", "ProxyCoreClient"]
