"""HTTP routers for the probing service."""

from nodeprobe.routers.check import create_check_router
from nodeprobe.routers.health import create_health_router

__all__ = ["create_check_router", "create_health_router"]
