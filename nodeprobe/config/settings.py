"""Pydantic Settings for the probing engine.

All environment variables use the NODEPROBE_ prefix.
Example: NODEPROBE_CONCURRENCY=20, NODEPROBE_CORE_PORT=9876,
NODEPROBE_TARGETS='["gpt", "claude"]'
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class DecisionPolicy(str, Enum):
    """How per-target outcomes are folded into node availability."""

    ALL = "all"  # every target must pass
    ANY = "any"  # one passing target is enough


class ProbeSettings(BaseSettings):
    """Probing engine configuration validated from environment variables."""

    # Service
    port: int = 8002
    log_level: str = "INFO"
    service_key: str | None = None  # X-Service-Key; auth disabled when unset

    # Targets
    targets: list[str] = ["gpt", "claude", "gemini"]
    custom_urls: list[str] = []
    targets_path: str | None = None  # YAML overlay for the built-in catalog

    # Decision
    decision_policy: DecisionPolicy = DecisionPolicy.ALL
    stop_on_first_failure: bool = False

    # Result cache
    cache_enabled: bool = False
    disable_failed_cache: bool = False
    cache_ttl_seconds: int = Field(default=172_800, ge=0)  # 48 hours

    # Scheduler
    concurrency: int = Field(default=10, ge=1)

    # Probe requests
    method: str = "get"
    request_timeout_ms: int = Field(default=5000, ge=100)
    retries: int = Field(default=1, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)

    # Proxy core control API
    core_protocol: str = "http"
    core_host: str = "127.0.0.1"
    core_port: int = Field(default=9876, ge=1, le=65535)
    core_authorization: str = ""
    core_start_delay_ms: int = Field(default=3000, ge=0)
    core_proxy_timeout_ms: int = Field(default=10_000, ge=0)  # budget per node

    # Output
    name_prefix: str = "[AI] "

    model_config = {"env_prefix": "NODEPROBE_"}

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def core_api_url(self) -> str:
        return f"{self.core_protocol}://{self.core_host}:{self.core_port}"

    def core_timeout_ms(self, node_count: int) -> int:
        """Self-termination budget handed to the core for a batch of *node_count* nodes."""
        return self.core_start_delay_ms + node_count * self.core_proxy_timeout_ms
