"""HTTP adapter and user-agent randomisation for probe requests."""

from nodeprobe.http.client import HttpAdapter, describe_error
from nodeprobe.http.user_agents import CURATED_USER_AGENTS, UserAgentRandomizer

__all__ = [
    "CURATED_USER_AGENTS",
    "HttpAdapter",
    "UserAgentRandomizer",
    "describe_error",
]
